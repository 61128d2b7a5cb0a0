"""
Insight keys API endpoints
"""
from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from tradeclock.api.deps import get_db, get_current_user_id, get_optional_user_id
from tradeclock.application.visibility import VisibilityCache
from tradeclock.domain.identity import resolve_identity
from tradeclock.domain.insight_keys import compute_identity_insight_keys
from tradeclock.infrastructure.db.models import User


router = APIRouter(prefix="/api/v1/insights", tags=["insights"])


def _visibility_cache(request: Request) -> VisibilityCache:
    cache = getattr(request.app.state, "visibility_cache", None)
    if cache is None:
        cache = request.app.state.visibility_cache = VisibilityCache()
    return cache


@router.post("/keys")
def event_insight_keys(event: dict[str, Any] = Body(...)):
    """Identity and insight keys of a calendar event."""
    identity = resolve_identity(event)
    return {
        "resolved": identity.is_resolved,
        "compositeKey": identity.composite_key,
        "nameKeys": list(identity.name_keys),
        "insightKeys": compute_identity_insight_keys(identity),
    }


@router.get("/visibility")
def visibility_filter(request: Request, db: Session = Depends(get_db)):
    """Activity visibilities the current user may read."""
    def load_role(user_id: int) -> str | None:
        user = db.query(User).filter(User.id == user_id).first()
        return user.role if user else None

    visibility = _visibility_cache(request).filter_for(get_optional_user_id(request), load_role)
    return {"visibility": list(visibility)}


@router.post("/visibility/refresh")
def refresh_visibility(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """Drop the cached filter after a role change or re-login and return the fresh one."""
    cache = _visibility_cache(request)
    cache.invalidate(user_id)
    user = db.query(User).filter(User.id == user_id).first()
    visibility = cache.filter_for(user_id, lambda _: user.role if user else None)
    return {"visibility": list(visibility)}
