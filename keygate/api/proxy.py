"""Forwarding of allowed requests to the upstream origin."""
from fastapi import APIRouter, Request
from fastapi.responses import Response
import httpx
import structlog

from ..middleware import error_response

log = structlog.get_logger()

router = APIRouter()

# Connection-level headers that must not be forwarded
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
    "content-encoding",
}


def _forwardable(headers) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}


@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
    include_in_schema=False,
)
async def forward(path: str, request: Request) -> Response:
    """
    Forward a request that passed the gate to UPSTREAM_URL.

    Returns 502 if no upstream is configured or the upstream is unreachable.
    """
    client: httpx.AsyncClient | None = getattr(request.app.state, "upstream_client", None)
    if client is None:
        return error_response(request, 502, "BadGateway", "Upstream not configured")

    upstream_request = client.build_request(
        request.method,
        request.url.path,
        params=request.url.query,
        headers=_forwardable(request.headers),
        content=await request.body(),
    )

    try:
        upstream_response = await client.send(upstream_request)
    except httpx.HTTPError as e:
        log.error("upstream.request_failed", error=str(e), error_type=type(e).__name__)
        return error_response(request, 502, "BadGateway", "Upstream request failed")

    return Response(
        content=upstream_response.content,
        status_code=upstream_response.status_code,
        headers=_forwardable(upstream_response.headers),
    )
