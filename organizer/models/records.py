"""
Domain Records

Persistence is delegated to the data platform, so these models only
describe what the client-side pattern needs: an opaque id, a creation
timestamp, typed fields and, for couple-scoped features, the couple id
used as the tenancy partition key.

All records accept unknown columns (extra="ignore") because the remote
schema evolves independently of this client.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DomainRecord(BaseModel):
    """Generic shape shared by every table row."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_row(self) -> dict[str, Any]:
        """Writable columns (server assigns id and created_at)."""
        return self.model_dump(mode="json", exclude={"id", "created_at"})


class CoupleScopedRecord(DomainRecord):
    """Records partitioned by couple."""

    couple_id: Optional[str] = None


# =============================================================================
# REMINDERS
# =============================================================================

class ReminderColor(str, Enum):
    YELLOW = "yellow"
    PINK = "pink"
    BLUE = "blue"
    GREEN = "green"


class Subtask(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    text: str
    is_done: bool = False


class Reminder(DomainRecord):
    title: str = Field(..., min_length=1, max_length=200)
    content: Optional[str] = None
    due_date: Optional[date] = None
    color: ReminderColor = ReminderColor.YELLOW
    is_done: bool = False
    created_by: str
    assigned_to: list[str] = Field(default_factory=list)
    subtasks: Optional[list[Subtask]] = None

    @field_validator("assigned_to", mode="before")
    @classmethod
    def coerce_assigned(cls, v: Any) -> Any:
        # Older rows stored a bare name or null
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @property
    def all_subtasks_done(self) -> bool:
        return all(st.is_done for st in self.subtasks or [])

    @property
    def progress(self) -> float:
        if not self.subtasks:
            return 0.0
        return sum(1 for st in self.subtasks if st.is_done) / len(self.subtasks)


# =============================================================================
# EXPENSES
# =============================================================================

class PaymentSource(str, Enum):
    PERSONAL_ACCOUNT = "Conta Pessoal"
    CARD = "Cartão"


class Expense(CoupleScopedRecord):
    description: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    due_date: Optional[date] = None
    payment_source: PaymentSource = PaymentSource.PERSONAL_ACCOUNT
    is_paid: bool = False


class RecurringExpense(CoupleScopedRecord):
    description: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    payment_source: PaymentSource = PaymentSource.PERSONAL_ACCOUNT
    day_of_month: int = Field(..., ge=1, le=31)
    start_date: date
    end_date: Optional[date] = None
    last_generated_date: Optional[date] = None
    is_active: bool = True
    google_calendar_event_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_period(self) -> "RecurringExpense":
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class Goal(CoupleScopedRecord):
    name: str = Field(..., min_length=1)
    target_amount: float = Field(..., gt=0)
    current_amount: float = Field(default=0.0, ge=0)
    created_by: Optional[str] = None
    is_archived: bool = False

    @property
    def progress(self) -> float:
        return min(self.current_amount / self.target_amount, 1.0)


class MonthlyClosing(CoupleScopedRecord):
    month_year: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    income_nicolas: float = 0.0
    income_ana: float = 0.0
    shared_goal: Optional[float] = None
    notes: Optional[str] = None
    goal_allocations: dict[str, float] = Field(default_factory=dict)
    analysis: Optional[dict[str, Any]] = None

    @field_validator("goal_allocations", mode="before")
    @classmethod
    def coerce_allocations(cls, v: Any) -> Any:
        return v or {}

    @property
    def total_allocated(self) -> float:
        return sum(self.goal_allocations.values())


# =============================================================================
# TRAVEL
# =============================================================================

class ItineraryCategory(str, Enum):
    FLIGHT = "flight"
    TRANSPORT = "transport"
    ACCOMMODATION = "accommodation"
    FOOD = "food"
    ACTIVITY = "activity"


class TripExpenseCategory(str, Enum):
    TRANSPORT = "transport"
    ACCOMMODATION = "accommodation"
    FOOD = "food"
    ACTIVITIES = "activities"
    SHOPPING = "shopping"
    OTHER = "other"


ITINERARY_TO_EXPENSE_CATEGORY: dict[ItineraryCategory, TripExpenseCategory] = {
    ItineraryCategory.FLIGHT: TripExpenseCategory.TRANSPORT,
    ItineraryCategory.TRANSPORT: TripExpenseCategory.TRANSPORT,
    ItineraryCategory.ACCOMMODATION: TripExpenseCategory.ACCOMMODATION,
    ItineraryCategory.FOOD: TripExpenseCategory.FOOD,
    ItineraryCategory.ACTIVITY: TripExpenseCategory.ACTIVITIES,
}


class TripStatus(str, Enum):
    PLANNING = "planning"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class Trip(CoupleScopedRecord):
    name: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: Optional[float] = Field(default=None, ge=0)
    status: TripStatus = TripStatus.PLANNING

    @model_validator(mode="after")
    def validate_dates(self) -> "Trip":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class ItineraryItem(DomainRecord):
    trip_id: str
    item_date: date
    start_time: Optional[str] = None
    description: str = Field(..., min_length=1)
    category: ItineraryCategory = ItineraryCategory.ACTIVITY
    location: Optional[str] = None
    cost: Optional[float] = Field(default=None, ge=0)
    is_completed: bool = False


class TripExpense(DomainRecord):
    trip_id: str
    description: str
    amount: float = Field(..., ge=0)
    category: TripExpenseCategory = TripExpenseCategory.OTHER
    payment_date: Optional[date] = None
    itinerary_item_id: Optional[str] = None


class GalleryItem(DomainRecord):
    trip_id: str
    image_url: str
    caption: Optional[str] = None
    is_inspiration: bool = False


# =============================================================================
# RESTAURANTS
# =============================================================================

class RestaurantCategory(str, Enum):
    CAFE = "Café"
    DINNER = "Jantar"
    SNACK = "Lanche"
    BAR = "Bar"
    OTHER = "Outro"


class RestaurantLocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class Review(BaseModel):
    """One person's review. A rating of 0 means not visited yet."""
    model_config = ConfigDict(extra="ignore")

    user: str
    rating: int = Field(default=0, ge=0, le=5)
    comment: str = ""


class Restaurant(DomainRecord):
    """
    Shared restaurant catalog row. Couples keep their own list through
    `couple_restaurants` links.

    The stored column for `added_by` is `addedBy`.
    """
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    category: RestaurantCategory = RestaurantCategory.OTHER
    cuisine: Optional[str] = None
    city: str = "Curitiba"
    locations: list[RestaurantLocation] = Field(default_factory=list)
    image: Optional[str] = None
    wants_to_go: list[str] = Field(default_factory=list)
    reviews: list[Review] = Field(default_factory=list)
    added_by: Optional[str] = Field(default=None, alias="addedBy")
    price_range: Optional[int] = Field(default=None, ge=1, le=4)
    google_rating: Optional[float] = None
    menu_url: Optional[str] = None
    vibe: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def unknown_category_is_other(cls, v: Any) -> Any:
        if isinstance(v, RestaurantCategory):
            return v
        known = {c.value for c in RestaurantCategory}
        return v if v in known else RestaurantCategory.OTHER

    @field_validator("locations", "wants_to_go", "reviews", mode="before")
    @classmethod
    def null_list_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("city", mode="before")
    @classmethod
    def default_city(cls, v: Any) -> Any:
        return v or "Curitiba"

    def review_by(self, user: str) -> Optional[Review]:
        return next((r for r in self.reviews if r.user == user), None)

    def visited_by(self, user: str) -> bool:
        review = self.review_by(user)
        return review is not None and review.rating > 0

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"id", "created_at"})


class CoupleRestaurant(CoupleScopedRecord):
    """Link putting a catalog restaurant on one couple's list (no id column)."""

    restaurant_id: str
    is_favorited: bool = False


# =============================================================================
# WELLNESS
# =============================================================================

MOOD_LABELS: dict[int, str] = {
    5: "Great",
    4: "Good",
    3: "Okay",
    2: "Low",
    1: "Awful",
}


class MoodEntry(DomainRecord):
    """One person's mood for one day (unique per user and date)."""

    user_id: str
    mood: int = Field(..., ge=1, le=5)
    entry_date: date

    @property
    def label(self) -> str:
        return MOOD_LABELS[self.mood]


# =============================================================================
# AI SUGGESTIONS
# =============================================================================

class AIRecommendation(BaseModel):
    """Restaurant suggested by the recommender."""
    model_config = ConfigDict(extra="ignore")

    restaurant_name: str
    category: str = ""
    reason: str = ""
    price_range: int = Field(default=2, ge=1, le=4)
    delivery: bool = False
    dine_in: bool = True
    address: str = ""
    rating: Optional[float] = None
    image_url: Optional[str] = None
    maps_url: Optional[str] = None


class RecommenderQuery(BaseModel):
    cravings: str
    exclusions: str = ""


class ItinerarySuggestion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str
    category: ItineraryCategory = ItineraryCategory.ACTIVITY
    item_date: Optional[date] = None
    start_time: Optional[str] = None
    location: Optional[str] = None
    estimated_cost: Optional[float] = None


class RecordValidationError(Exception):
    """A record failed validation before any remote call was made."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)
