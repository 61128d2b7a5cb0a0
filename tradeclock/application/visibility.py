"""
Visibility filters for the insights feed.

A user's role decides which activity visibilities they may read. Roles do
not change mid-session, so the filter is cached per user id; the cache is an
explicit object owned by the caller and is cleared on login/logout through
invalidate().
"""
from typing import Callable


VISIBILITY_BY_ROLE = {
    "superadmin": ("public", "internal", "admin"),
    "admin": ("public", "internal"),
    "user": ("public",),
}
PUBLIC_ONLY = ("public",)


def visibility_for_role(role: str | None) -> tuple[str, ...]:
    return VISIBILITY_BY_ROLE.get(role or "user", PUBLIC_ONLY)


class VisibilityCache:
    def __init__(self):
        self._filters: dict[int, tuple[str, ...]] = {}

    def filter_for(self, user_id: int | None, role_loader: Callable[[int], str | None]) -> tuple[str, ...]:
        """Cached visibility filter; anonymous users only see public entries."""
        if not user_id:
            return PUBLIC_ONLY
        cached = self._filters.get(user_id)
        if cached is not None:
            return cached
        visibility = visibility_for_role(role_loader(user_id))
        self._filters[user_id] = visibility
        return visibility

    def invalidate(self, user_id: int | None = None) -> None:
        """Drop one user's entry, or everything when user_id is None."""
        if user_id is None:
            self._filters.clear()
        else:
            self._filters.pop(user_id, None)
