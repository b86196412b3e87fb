"""CORS origin policy and middleware."""

from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response

ALLOW_METHODS = "GET, POST, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"


class CORSPolicy:
    """Decides the ``Access-Control-Allow-Origin`` value for a request.

    An empty allow-list allows every origin. Otherwise a listed origin is
    echoed, and an unlisted (or absent) origin gets either the first listed
    origin (``fallback="first"``) or no header at all (``fallback="reject"``).
    """

    def __init__(self, allowed_origins: list[str], fallback: str = "first") -> None:
        if fallback not in ("first", "reject"):
            raise ValueError(f"Unknown CORS fallback: {fallback!r}")
        self._allowed = list(allowed_origins)
        self._fallback = fallback

    def resolve(self, origin: str | None) -> str | None:
        """Return the origin to advertise, or None to omit the header."""
        if not self._allowed:
            return "*"
        if origin and origin in self._allowed:
            return origin
        if self._fallback == "first":
            return self._allowed[0]
        return None

    def headers(self, origin: str | None) -> dict[str, str]:
        """Headers added to every response."""
        allowed = self.resolve(origin)
        if allowed is None:
            return {}
        headers = {"Access-Control-Allow-Origin": allowed}
        if allowed != "*":
            headers["Vary"] = "Origin"
        return headers


def install_cors(app: FastAPI, policy: CORSPolicy) -> None:
    """Register the CORS middleware on ``app``.

    ``OPTIONS`` requests are answered here with 204 and never reach the
    routes, so preflights need no credentials.
    """

    @app.middleware("http")
    async def cors_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        headers = policy.headers(request.headers.get("origin"))
        if request.method == "OPTIONS":
            if headers:
                headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
                headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
            return Response(status_code=204, headers=headers)

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response
