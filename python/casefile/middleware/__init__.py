"""Middleware components for the Casefile API."""

from casefile.middleware.cors import ApiCORSMiddleware
from casefile.middleware.request_id import RequestIDMiddleware

__all__ = ["ApiCORSMiddleware", "RequestIDMiddleware"]
