"""
FastAPI dependencies (DB session, authentication)
"""
from fastapi import Request, HTTPException, status

from tradeclock.infrastructure.db.session import get_db as _get_db


# re-exported for routers
get_db = _get_db


def get_current_user_id(request: Request) -> int:
    """
    User id from the session (for API endpoints)

    Raises:
        HTTPException(401): if not logged in
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return int(user_id)


def get_optional_user_id(request: Request) -> int | None:
    user_id = request.session.get("user_id")
    return int(user_id) if user_id else None
