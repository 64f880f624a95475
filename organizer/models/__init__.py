"""
Data Models Package

Pydantic models for profiles, sessions, domain records and audit events.
"""

from organizer.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from organizer.models.profile import (
    VIEW_LABELS,
    IdentityAssertion,
    Role,
    Session,
    UserProfile,
    View,
)
from organizer.models.records import (
    ITINERARY_TO_EXPENSE_CATEGORY,
    MOOD_LABELS,
    AIRecommendation,
    CoupleRestaurant,
    CoupleScopedRecord,
    DomainRecord,
    Expense,
    GalleryItem,
    Goal,
    ItineraryCategory,
    ItineraryItem,
    ItinerarySuggestion,
    MonthlyClosing,
    MoodEntry,
    PaymentSource,
    RecommenderQuery,
    RecordValidationError,
    RecurringExpense,
    Reminder,
    ReminderColor,
    Restaurant,
    RestaurantCategory,
    RestaurantLocation,
    Review,
    Subtask,
    Trip,
    TripExpense,
    TripStatus,
    TripExpenseCategory,
)

__all__ = [
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Profile models
    "VIEW_LABELS",
    "IdentityAssertion",
    "Role",
    "Session",
    "UserProfile",
    "View",
    # Domain records
    "ITINERARY_TO_EXPENSE_CATEGORY",
    "MOOD_LABELS",
    "AIRecommendation",
    "CoupleRestaurant",
    "CoupleScopedRecord",
    "DomainRecord",
    "Expense",
    "GalleryItem",
    "Goal",
    "ItineraryCategory",
    "ItineraryItem",
    "ItinerarySuggestion",
    "MonthlyClosing",
    "MoodEntry",
    "PaymentSource",
    "RecommenderQuery",
    "RecordValidationError",
    "RecurringExpense",
    "Reminder",
    "ReminderColor",
    "Restaurant",
    "RestaurantCategory",
    "RestaurantLocation",
    "Review",
    "Subtask",
    "Trip",
    "TripExpense",
    "TripStatus",
    "TripExpenseCategory",
]
