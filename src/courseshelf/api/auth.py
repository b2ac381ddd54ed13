from typing import Optional

from aiohttp import web


def principal_from_request(request: web.Request, header_name: str) -> Optional[str]:
    """
    Get the authenticated user id forwarded by the auth proxy.

    Args:
        request: Incoming request
        header_name: Header the proxy puts the user id in

    Returns:
        The user id, or None for anonymous requests
    """
    value = request.headers.get(header_name, "").strip()
    return value or None
