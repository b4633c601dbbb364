from typing import Optional

from fastapi import Header, HTTPException


async def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Every coach and goal route is scoped to the caller named by ``X-User-Id``."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id.strip()
