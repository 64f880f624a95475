"""
Feature controllers package.

One controller per screen; each owns the optimistic collections the
screen renders.
"""

from organizer.features.admin import ProfileAdmin
from organizer.features.base import (
    FeatureController,
    parse_rows,
    record_changes,
    table_collection,
    validate_record,
)
from organizer.features.expenses import ExpensePlanner, MonthSummary, SourceSummary, month_key
from organizer.features.reminders import ReminderBoard, ReminderFilter, urgency_key
from organizer.features.restaurants import ListedRestaurant, RestaurantList
from organizer.features.travel import TripBoard, TripDetail, storage_path_from_url
from organizer.features.wellness import MoodTracker

__all__ = [
    # Building blocks
    "FeatureController",
    "parse_rows",
    "record_changes",
    "table_collection",
    "validate_record",
    # Screens
    "ExpensePlanner",
    "ListedRestaurant",
    "MonthSummary",
    "MoodTracker",
    "ProfileAdmin",
    "ReminderBoard",
    "ReminderFilter",
    "RestaurantList",
    "SourceSummary",
    "TripBoard",
    "TripDetail",
    # Helpers
    "month_key",
    "storage_path_from_url",
    "urgency_key",
]
