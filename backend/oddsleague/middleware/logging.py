import hashlib
import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from oddsleague.services.rate_limiter import client_id

logger = logging.getLogger("oddsleague.http")


def _hash_client(request: Request) -> str | None:
    # Behind the proxy the socket peer is the proxy itself.
    ident = client_id(request)
    if ident == "unknown":
        ident = request.client.host if request.client else ""
    if not ident:
        return None
    return hashlib.sha256(ident.encode()).hexdigest()[:12]


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON log line per request; echoes the request id as X-Request-ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start = time.perf_counter()

        response: Response = await call_next(request)

        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            "client_ip_hash": _hash_client(request),
        }

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(level, json.dumps(log_data))

        response.headers["X-Request-ID"] = request_id
        return response


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    # httpx logs every request URL at INFO, including the odds API key query param.
    logging.getLogger("httpx").setLevel(logging.WARNING)
