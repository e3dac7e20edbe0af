"""Pure ASGI CORS middleware for the public /api/* endpoints.

- Scoped by path: requests outside /api/ pass through untouched.
- Allowed origins get their own origin echoed with credentials allowed.
  Any other origin gets the first allow-list entry, which the browser will
  not match, so only allow-listed sites can read credentialed responses.
- OPTIONS is answered here with the CORS headers and an empty body; it
  never reaches routing or auth.
"""

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

API_PREFIX = "/api/"

ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization, stripe-signature, x-client-info"
MAX_AGE_S = "86400"


class ApiCORSMiddleware:
    """Path-scoped CORS for /api/* routes.

    Args:
        app: The ASGI application.
        allowed_origins: Ordered allow-list; the first entry is the default
            Access-Control-Allow-Origin for unknown origins.
    """

    def __init__(self, app: ASGIApp, allowed_origins: list[str]):
        if not allowed_origins:
            raise ValueError("allowed_origins must not be empty")
        self.app = app
        self.allowed_origins = list(allowed_origins)

    def cors_headers(self, origin: str | None) -> dict[str, str]:
        allow_origin = origin if origin in self.allowed_origins else self.allowed_origins[0]
        return {
            "access-control-allow-origin": allow_origin,
            "access-control-allow-credentials": "true",
            "access-control-allow-methods": ALLOW_METHODS,
            "access-control-allow-headers": ALLOW_HEADERS,
            "access-control-max-age": MAX_AGE_S,
            "vary": "Origin",
        }

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope["path"].startswith(API_PREFIX):
            await self.app(scope, receive, send)
            return

        headers = self.cors_headers(Headers(scope=scope).get("origin"))

        if scope["method"] == "OPTIONS":
            response = Response(status_code=200, headers=headers)
            await response(scope, receive, send)
            return

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for key, value in headers.items():
                    response_headers[key] = value
            await send(message)

        await self.app(scope, receive, send_with_cors)
