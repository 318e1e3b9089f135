from typing import Optional
from fastapi import Request
from learnflow.core.jwt import decode_token


def get_current_user_from_request(request: Request) -> Optional[int]:
    """
    Extracts the user id from the access_token cookie.
    Returns None if the cookie is missing or the token is invalid.
    """
    token = request.cookies.get("access_token")
    if not token:
        return None

    payload = decode_token(token)
    if not payload or payload.get("sub") is None:
        return None

    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
