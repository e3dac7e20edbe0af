"""Uvicorn entrypoint for the Casefile API.

Run with: uvicorn main:app --reload (from apps/api)

The app instance is created here rather than in casefile.app, so importing
casefile.app in tests has no settings-dependent side effects.
"""

from casefile.app import add_request_id_middleware, create_app

app = create_app()
# Outermost middleware: registered last
add_request_id_middleware(app)

__all__ = ["app"]
