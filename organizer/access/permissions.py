"""
View Permissions

Pure functions; the navigation gate and the render gate both go through
resolve_permitted_views() so they can never disagree.

Profiles created before per-view permissions existed have no (or an
empty) allowed_views list. For those, the role decides, using the
legacy table below.
"""

from typing import Optional

from organizer.models.profile import Role, UserProfile, View


SAFE_DEFAULT_VIEW = View.RESTAURANTS

_ALL_FEATURE_VIEWS = [
    View.DASHBOARD,
    View.RESTAURANTS,
    View.AI_RECOMMENDER,
    View.TRAVEL,
    View.EXPENSES,
    View.RECIPES,
    View.REMINDERS,
    View.WELLNESS,
    View.LISTS,
    View.STUDY_NOTES,
]

LEGACY_ROLE_VIEWS: dict[Role, list[View]] = {
    Role.ADMIN: _ALL_FEATURE_VIEWS + [View.ADMIN],
    Role.PARTNER: list(_ALL_FEATURE_VIEWS),
    Role.PARENT: [View.STUDY_NOTES],
    Role.VISITOR: [View.RESTAURANTS],
}


def legacy_views_for_role(role: Optional[Role]) -> list[View]:
    """Fallback view set for a role; unknown roles get the safe default only."""
    if role is None:
        return [SAFE_DEFAULT_VIEW]
    return list(LEGACY_ROLE_VIEWS.get(role, [SAFE_DEFAULT_VIEW]))


def resolve_permitted_views(profile: Optional[UserProfile]) -> list[View]:
    """
    Permitted views for a profile, in navigation order.

    A non-empty allowed_views list always wins; the role table is only
    consulted when the list is absent or empty.
    """
    if profile is None:
        return []
    if profile.allowed_views:
        seen: list[View] = []
        for view in profile.allowed_views:
            if view not in seen:
                seen.append(view)
        return seen
    return legacy_views_for_role(profile.role)


def gate_navigation(profile: Optional[UserProfile], requested: View) -> View:
    """
    The view a navigation request actually lands on.

    Disallowed requests go to the first permitted view, or to the safe
    default when nothing is permitted.
    """
    permitted = resolve_permitted_views(profile)
    if requested in permitted:
        return requested
    return permitted[0] if permitted else SAFE_DEFAULT_VIEW


def can_render(profile: Optional[UserProfile], view: View) -> bool:
    """Render gate: False means show the access-denied placeholder."""
    return view in resolve_permitted_views(profile)
