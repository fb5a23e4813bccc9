from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

USER_HEADER = "X-Collective-User"


def current_user_id_optional(
    x_collective_user: Optional[str] = Header(
        default=None,
        alias=USER_HEADER,
        description="Caller account id (e.g. '@alice').",
    ),
) -> Optional[str]:
    if not x_collective_user or not x_collective_user.strip():
        return None
    return x_collective_user.strip()


def require_current_user_id(
    user_id: Optional[str] = Depends(current_user_id_optional),
) -> str:
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="auth_required")
    return user_id
