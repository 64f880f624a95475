"""
Travel Planner

Trips are couple-scoped. Inside a trip, three lists live side by side:
the itinerary, the trip expenses and the photo gallery.

An itinerary item with a cost owns one linked "[Roteiro]" expense:
- Saving the item with cost > 0 creates or updates that expense
- Saving it with no cost deletes the expense
- Deleting the item deletes the expense first, and stops if that fails

Gallery photos live in object storage; the row only keeps the public URL.
"""

import re
import unicodedata
from datetime import date, datetime, timezone
from typing import Any, Optional

import structlog

from organizer.audit.logger import AuditLogger, correlated_action
from organizer.features.base import FeatureController, record_changes, table_collection, validate_record
from organizer.models.profile import UserProfile
from organizer.models.records import (
    ITINERARY_TO_EXPENSE_CATEGORY,
    GalleryItem,
    ItineraryCategory,
    ItineraryItem,
    RecordValidationError,
    Trip,
    TripExpense,
    TripExpenseCategory,
)
from organizer.services.storage.interface import DataGateway, Filter, ObjectStorage, StorageError
from organizer.store.optimistic import MutationResult
from organizer.store.subscriptions import SubscriptionManager
from organizer.store.tenancy import PartitionScope, TenancyCheck, TenancyGate


logger = structlog.get_logger(__name__)

TRIPS_TABLE = "trips"
ITINERARY_TABLE = "trip_itinerary_items"
TRIP_EXPENSES_TABLE = "trip_expenses"
GALLERY_TABLE = "trip_gallery_items"

ITINERARY_EXPENSE_PREFIX = "[Roteiro]"


def slugify(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")


def storage_path_from_url(url: str, bucket: str) -> Optional[str]:
    """Object path inside the bucket, recovered from its public URL."""
    marker = f"/{bucket}/"
    if marker not in url:
        return None
    return url.split(marker, 1)[1] or None


class TripBoard(FeatureController):
    """Controller for the list of trips."""

    def __init__(
        self,
        gateway: DataGateway,
        subscriptions: SubscriptionManager,
        profile: UserProfile,
        audit: Optional[AuditLogger] = None,
    ):
        super().__init__(gateway, subscriptions, audit)
        self._profile = profile
        self._gate = TenancyGate(gateway, tables=[TRIPS_TABLE], audit=audit)
        self.tenancy: Optional[TenancyCheck] = None
        self.scope: Optional[PartitionScope] = None
        self.trips = table_collection(
            gateway, TRIPS_TABLE, Trip,
            filters=lambda: self.scope.filters() if self.scope else [],
            order_by="start_date",
            stamp=lambda row: self.scope.stamp(row) if self.scope else row,
            sort_key=lambda t: (t.start_date or date.max, t.name.lower()),
            audit=audit,
        )
        self._bindings = [(self.trips, [TRIPS_TABLE])]

    async def mount(self) -> None:
        self.tenancy = await self._gate.check(self._profile)
        if not self.tenancy.ready:
            return
        self.scope = PartitionScope(self.tenancy.couple_id)
        await super().mount()

    async def save_trip(self, data: dict[str, Any], trip_id: Optional[str] = None) -> MutationResult:
        if self.scope is None:
            raise RecordValidationError("Couple data is not available.", "couple_id")
        trip = validate_record(Trip, {**data, "couple_id": self.scope.couple_id})
        if trip_id:
            changes = record_changes(trip, "couple_id")
            return await self.trips.update(trip_id, changes)
        return await self.trips.insert(trip)

    async def delete_trip(self, trip_id: str) -> MutationResult:
        return await self.trips.remove(trip_id)


class TripDetail(FeatureController):
    """Controller for one trip: itinerary, expenses, gallery."""

    def __init__(
        self,
        gateway: DataGateway,
        subscriptions: SubscriptionManager,
        storage: ObjectStorage,
        trip: Trip,
        bucket: str = "trip-images",
        audit: Optional[AuditLogger] = None,
    ):
        super().__init__(gateway, subscriptions, audit)
        if not trip.id:
            raise RecordValidationError("Trip must be saved first.", "id")
        self.trip = trip
        self._storage = storage
        self._bucket = bucket
        by_trip = lambda: [Filter.eq("trip_id", trip.id)]

        self.itinerary = table_collection(
            gateway, ITINERARY_TABLE, ItineraryItem,
            filters=by_trip,
            order_by="item_date",
            sort_key=lambda i: (i.item_date, i.start_time or ""),
            audit=audit,
        )
        self.expenses = table_collection(
            gateway, TRIP_EXPENSES_TABLE, TripExpense,
            filters=by_trip,
            order_by="payment_date",
            descending=True,
            sort_key=lambda e: (e.payment_date is None, -e.payment_date.toordinal() if e.payment_date else 0),
            audit=audit,
        )
        self.gallery = table_collection(
            gateway, GALLERY_TABLE, GalleryItem,
            filters=by_trip,
            order_by="created_at",
            descending=True,
            audit=audit,
        )
        self._bindings = [
            (self.itinerary, [ITINERARY_TABLE]),
            (self.expenses, [TRIP_EXPENSES_TABLE]),
            (self.gallery, [GALLERY_TABLE]),
        ]

    # =========================================================================
    # ITINERARY
    # =========================================================================

    def linked_expense(self, item_id: Optional[str]) -> Optional[TripExpense]:
        if not item_id:
            return None
        for expense in self.expenses:
            if expense.itinerary_item_id == item_id:
                return expense
        return None

    @correlated_action
    async def save_itinerary_item(
        self,
        description: str,
        item_date: date,
        category: ItineraryCategory = ItineraryCategory.ACTIVITY,
        start_time: Optional[str] = None,
        location: Optional[str] = None,
        cost: Optional[float] = None,
        item_id: Optional[str] = None,
    ) -> MutationResult:
        item = validate_record(ItineraryItem, {
            "trip_id": self.trip.id,
            "item_date": item_date,
            "description": description,
            "category": category,
            "start_time": start_time or None,
            "location": location or None,
            "cost": cost,
        })
        linked = self.linked_expense(item_id)

        if item_id:
            changes = record_changes(item, "is_completed")
            result = await self.itinerary.update(item_id, changes)
        else:
            result = await self.itinerary.insert(item)
        if not result.ok:
            return result

        saved_id = item_id or result.record.id
        if item.cost and item.cost > 0:
            payload = TripExpense(
                trip_id=self.trip.id,
                description=f"{ITINERARY_EXPENSE_PREFIX} {item.description}",
                amount=item.cost,
                category=ITINERARY_TO_EXPENSE_CATEGORY.get(item.category, TripExpenseCategory.OTHER),
                payment_date=item.item_date,
                itinerary_item_id=saved_id,
            )
            if linked:
                linked_result = await self.expenses.update(linked.id, record_changes(payload))
            else:
                linked_result = await self.expenses.insert(payload)
        elif linked:
            linked_result = await self.expenses.remove(linked.id)
        else:
            return result

        if not linked_result.ok:
            return result.model_copy(update={
                "error": f"Item saved, but its expense was not updated: {linked_result.error}",
            })
        return result

    async def toggle_completed(self, item_id: str) -> MutationResult:
        item = self.itinerary.get(item_id)
        if item is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        return await self.itinerary.update(item_id, {"is_completed": not item.is_completed})

    @correlated_action
    async def delete_itinerary_item(self, item_id: str) -> MutationResult:
        linked = self.linked_expense(item_id)
        if linked:
            removed = await self.expenses.remove(linked.id)
            if not removed.ok:
                return MutationResult(
                    ok=False,
                    operation="delete",
                    error=f"Could not delete the linked expense: {removed.error}",
                )
        return await self.itinerary.remove(item_id)

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def save_expense(
        self,
        description: str,
        amount: float,
        category: TripExpenseCategory = TripExpenseCategory.OTHER,
        payment_date: Optional[date] = None,
        expense_id: Optional[str] = None,
    ) -> MutationResult:
        expense = validate_record(TripExpense, {
            "trip_id": self.trip.id,
            "description": description,
            "amount": amount,
            "category": category,
            "payment_date": payment_date,
        })
        if expense_id:
            changes = record_changes(expense, "itinerary_item_id")
            return await self.expenses.update(expense_id, changes)
        return await self.expenses.insert(expense)

    async def delete_expense(self, expense_id: str) -> MutationResult:
        return await self.expenses.remove(expense_id)

    def spent_by_category(self) -> dict[TripExpenseCategory, float]:
        totals: dict[TripExpenseCategory, float] = {}
        for expense in self.expenses:
            totals[expense.category] = totals.get(expense.category, 0.0) + expense.amount
        return totals

    @property
    def total_spent(self) -> float:
        return sum(e.amount for e in self.expenses)

    @property
    def remaining_budget(self) -> Optional[float]:
        if self.trip.budget is None:
            return None
        return self.trip.budget - self.total_spent

    # =========================================================================
    # GALLERY
    # =========================================================================

    @correlated_action
    async def add_photo(
        self,
        data: bytes,
        caption: str = "",
        content_type: str = "image/jpeg",
    ) -> MutationResult:
        if not data:
            raise RecordValidationError("Choose a photo to upload.", "image")

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        path = f"{self.trip.id}/{slugify(caption) or 'gallery'}-{stamp}.jpg"
        try:
            await self._storage.upload(self._bucket, path, data, content_type)
        except StorageError as e:
            logger.warning("photo_upload_failed", trip_id=self.trip.id, error=str(e))
            return MutationResult(ok=False, operation="upload", error=str(e))

        item = GalleryItem(
            trip_id=self.trip.id,
            image_url=self._storage.public_url(self._bucket, path),
            caption=caption or None,
        )
        result = await self.gallery.insert(item)
        if not result.ok:
            await self._remove_blob(path)
        return result

    @correlated_action
    async def delete_photo(self, item_id: str) -> MutationResult:
        item = self.gallery.get(item_id)
        if item is None:
            return MutationResult(ok=False, operation="delete", error="Record no longer exists")
        path = storage_path_from_url(item.image_url, self._bucket)
        if path:
            await self._remove_blob(path)
        return await self.gallery.remove(item_id)

    async def _remove_blob(self, path: str) -> None:
        try:
            await self._storage.remove(self._bucket, [path])
        except StorageError as e:
            # An orphaned blob is harmless; the row is what the screen shows
            logger.warning("photo_remove_failed", path=path, error=str(e))
