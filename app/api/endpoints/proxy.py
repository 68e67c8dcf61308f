# app/api/endpoints/proxy.py
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from app.gateway.proxy import GatewayProxy
from app.gateway.state import GatewayState, get_gateway_state

router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def get_gateway_proxy(state: GatewayState = Depends(get_gateway_state)) -> GatewayProxy:
    return GatewayProxy(state)


# Catch-all; must be included after every other router
@router.api_route("/{full_path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def proxy_request(
    request: Request,
    full_path: str,
    proxy: GatewayProxy = Depends(get_gateway_proxy)
) -> Response:
    """Proxy `/{slug}/{...path}` to the registered origin, charging the caller."""
    return await proxy.handle(request)
