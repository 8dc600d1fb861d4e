from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request

from forecast_tracker import spaces


def _extract_bearer_user(header_value: str | None) -> str | None:
    if not header_value:
        return None
    if header_value.startswith("Bearer "):
        token = header_value[7:].strip()
        return token or None
    return None


def get_db_path(request: Request) -> str:
    return request.app.state.db_path


def current_user(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
) -> str:
    """Caller identity from ``Authorization: Bearer <id>`` or ``X-User-Id``.

    Verifying the identity belongs to the fronting identity provider; this
    layer only needs to know who is asking.
    """
    user_id = _extract_bearer_user(authorization)
    if user_id is None and x_user_id:
        user_id = x_user_id.strip() or None
    if user_id is None:
        raise HTTPException(
            status_code=401,
            detail="authentication required",
            headers={"WWW-Authenticate": 'Bearer realm="Forecast"'},
        )
    return user_id


def space_member(
    space_id: int,
    user_id: str = Depends(current_user),
    db_path: str = Depends(get_db_path),
) -> str:
    if not spaces.is_member(db_path, space_id, user_id):
        raise HTTPException(status_code=403, detail="not a member of this space")
    return user_id
