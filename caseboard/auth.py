from typing import Optional

from fastapi import Header, HTTPException


def get_current_user(authorization: Optional[str] = Header(default=None)) -> str:
    """Name of the caller, taken from ``Authorization: Bearer <user>``.

    Boards are not access controlled; the name is only recorded as the board
    owner.
    """
    if authorization is None:
        raise HTTPException(status_code=401, detail="missing_token")
    scheme, _, user_id = authorization.partition(" ")
    if scheme.lower() != "bearer" or not user_id.strip():
        raise HTTPException(status_code=401, detail="invalid_token")
    return user_id.strip()
