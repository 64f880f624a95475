"""
Identity and Session Models

A signed-in external identity (Google account) is resolved to exactly
one application UserProfile. The profile decides which views the person
may open. The Session is what survives a restart: the profile plus the
delegated bearer token.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator


logger = structlog.get_logger(__name__)


class Role(str, Enum):
    """Profile role. Only consulted when a profile has no explicit view list."""
    ADMIN = "admin"
    PARTNER = "partner"
    PARENT = "parent"
    VISITOR = "visitor"


class View(str, Enum):
    """Navigable screens."""
    DASHBOARD = "dashboard"
    RESTAURANTS = "restaurants"
    AI_RECOMMENDER = "ai-recommender"
    TRAVEL = "travel"
    EXPENSES = "expenses"
    RECIPES = "recipes"
    REMINDERS = "reminders"
    WELLNESS = "wellness"
    LISTS = "lists"
    STUDY_NOTES = "study-notes"
    APPLICATIONS = "applications"
    ADMIN = "admin"


VIEW_LABELS: dict[View, str] = {
    View.DASHBOARD: "Dashboard",
    View.RESTAURANTS: "Restaurants",
    View.AI_RECOMMENDER: "AI Recommender",
    View.TRAVEL: "Travel",
    View.EXPENSES: "Planning",
    View.RECIPES: "Recipes",
    View.REMINDERS: "Reminders",
    View.WELLNESS: "Wellness",
    View.LISTS: "Lists",
    View.STUDY_NOTES: "Study Notes",
    View.APPLICATIONS: "Applications",
    View.ADMIN: "Admin",
}


class IdentityAssertion(BaseModel):
    """What the identity provider tells us about the person signing in."""

    email: str = Field(..., min_length=3)
    name: Optional[str] = None
    picture: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class UserProfile(BaseModel):
    """
    Application user profile (row of `user_profiles`).

    Identity key is the email. `allowed_views` may be null or empty for
    profiles created before per-view permissions existed.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    email: str
    name: str
    picture: Optional[str] = None
    role: Optional[Role] = Role.VISITOR
    couple_id: Optional[str] = None
    allowed_views: Optional[list[View]] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: Optional[datetime] = None

    @field_validator("allowed_views", mode="before")
    @classmethod
    def drop_unknown_views(cls, v: Any) -> Any:
        """Stored view lists may still name screens that no longer exist."""
        if v is None:
            return None
        known = {view.value for view in View}
        kept = []
        for item in v:
            value = item.value if isinstance(item, View) else str(item)
            if value in known:
                kept.append(value)
            else:
                logger.warning("unknown_view_dropped", view=value)
        return kept

    @field_validator("role", mode="before")
    @classmethod
    def drop_unknown_role(cls, v: Any) -> Any:
        """A role this version does not know grants only the safe default view."""
        if v is None or isinstance(v, Role):
            return v
        if str(v) not in {role.value for role in Role}:
            logger.warning("unknown_role_dropped", role=str(v))
            return None
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    def to_row(self) -> dict[str, Any]:
        """Columns as stored in `user_profiles` (picture comes from the identity provider)."""
        row = self.model_dump(mode="json", exclude={"id", "picture", "created_at"})
        return row


class Session(BaseModel):
    """Durable client session: profile + bearer token + last view."""

    profile: UserProfile
    access_token: Optional[str] = None
    current_view: View = View.DASHBOARD
    signed_in_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
