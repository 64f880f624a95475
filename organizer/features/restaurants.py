"""
Restaurant List

Restaurants live in a shared catalog (`restaurants`); a couple's list is
the set of `couple_restaurants` links carrying their couple id. Removing
a restaurant from the list deletes the link only, never the catalog row.

Reviews and the "want to go" marks are stored on the catalog row, one
review per person: saving a review replaces that person's previous one.
"""

import random
from typing import Any, Optional

import structlog
from pydantic import BaseModel

from organizer.audit.logger import AuditLogger, correlated_action
from organizer.features.base import FeatureController, table_collection, validate_record
from organizer.models.profile import UserProfile
from organizer.models.records import (
    CoupleRestaurant,
    RecordValidationError,
    Restaurant,
    RestaurantCategory,
    Review,
)
from organizer.services.storage.interface import DataGateway
from organizer.store.optimistic import MutationResult
from organizer.store.subscriptions import SubscriptionManager
from organizer.store.tenancy import PartitionScope, TenancyCheck, TenancyGate


logger = structlog.get_logger(__name__)

RESTAURANTS_TABLE = "restaurants"
COUPLE_RESTAURANTS_TABLE = "couple_restaurants"

# Columns a couple may edit on a catalog row
EDITABLE_FIELDS = {"name", "category", "cuisine", "city", "locations", "image", "price_range", "menu_url", "vibe"}


class ListedRestaurant(BaseModel):
    """A catalog restaurant as it appears on one couple's list."""

    restaurant: Restaurant
    is_favorited: bool = False

    @property
    def id(self) -> Optional[str]:
        return self.restaurant.id

    @property
    def name(self) -> str:
        return self.restaurant.name


class RestaurantList(FeatureController):
    """Controller for the restaurants screen and the date roulette."""

    def __init__(
        self,
        gateway: DataGateway,
        subscriptions: SubscriptionManager,
        profile: UserProfile,
        audit: Optional[AuditLogger] = None,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(gateway, subscriptions, audit)
        self._profile = profile
        self._rng = rng or random.Random()
        self._gate = TenancyGate(gateway, tables=[COUPLE_RESTAURANTS_TABLE], audit=audit)
        self.tenancy: Optional[TenancyCheck] = None
        self.scope: Optional[PartitionScope] = None

        self.catalog = table_collection(
            gateway, RESTAURANTS_TABLE, Restaurant,
            order_by="name",
            sort_key=lambda r: r.name.lower(),
            audit=audit,
        )
        self.links = table_collection(
            gateway, COUPLE_RESTAURANTS_TABLE, CoupleRestaurant,
            filters=lambda: self.scope.filters() if self.scope else [],
            stamp=lambda row: self.scope.stamp(row) if self.scope else row,
            audit=audit,
            key_column="restaurant_id",
            write_filters=lambda: self.scope.filters() if self.scope else [],
        )
        self._bindings = [
            (self.catalog, [RESTAURANTS_TABLE]),
            (self.links, [COUPLE_RESTAURANTS_TABLE]),
        ]

    async def mount(self) -> None:
        self.tenancy = await self._gate.check(self._profile)
        if not self.tenancy.ready:
            return
        self.scope = PartitionScope(self.tenancy.couple_id)
        await super().mount()

    @property
    def me(self) -> str:
        return self._profile.name

    def _require_scope(self) -> PartitionScope:
        if self.scope is None:
            raise RecordValidationError("Couple data is not available.", "couple_id")
        return self.scope

    # =========================================================================
    # READ
    # =========================================================================

    @property
    def entries(self) -> list[ListedRestaurant]:
        """The couple's list, by name. Links to unknown catalog rows are skipped."""
        listed = []
        for link in self.links:
            restaurant = self.catalog.get(link.restaurant_id)
            if restaurant is not None:
                listed.append(ListedRestaurant(restaurant=restaurant, is_favorited=link.is_favorited))
        return sorted(listed, key=lambda e: e.name.lower())

    def known_names(self) -> list[str]:
        """Names already on the list, so the recommender can skip them."""
        return [e.name for e in self.entries]

    def filtered(
        self,
        category: Optional[RestaurantCategory] = None,
        price_levels: Optional[list[int]] = None,
        favorites_only: bool = False,
        visited: Optional[bool] = None,
        search: str = "",
    ) -> list[ListedRestaurant]:
        term = search.strip().lower()
        selected = []
        for entry in self.entries:
            r = entry.restaurant
            if category is not None and r.category != category:
                continue
            if price_levels and r.price_range not in price_levels:
                continue
            if favorites_only and not entry.is_favorited:
                continue
            if visited is not None and r.visited_by(self.me) != visited:
                continue
            if term and not (
                term in r.name.lower()
                or (r.cuisine and term in r.cuisine.lower())
                or any(term in loc.address.lower() for loc in r.locations)
            ):
                continue
            selected.append(entry)
        return selected

    def roulette(self, favorites_only: bool = False) -> Optional[ListedRestaurant]:
        """
        Pick a random restaurant for a date.

        Candidates are the favorites, or the places this person has not
        reviewed yet. None when there is nothing to pick from.
        """
        if favorites_only:
            candidates = [e for e in self.entries if e.is_favorited]
        else:
            candidates = [e for e in self.entries if e.restaurant.review_by(self.me) is None]
        if not candidates:
            return None
        return self._rng.choice(candidates)

    # =========================================================================
    # WRITE
    # =========================================================================

    @correlated_action
    async def add_restaurant(self, data: dict[str, Any]) -> MutationResult:
        """
        Put a restaurant on the couple's list, creating the catalog row
        unless one with the same name and city already exists.

        Raises:
            RecordValidationError: invalid data, or already on the list
        """
        scope = self._require_scope()
        restaurant = validate_record(Restaurant, {**data, "added_by": self.me})

        existing = next((
            r for r in self.catalog
            if r.name.lower() == restaurant.name.lower() and r.city.lower() == restaurant.city.lower()
        ), None)
        if existing is not None and self.links.get(existing.id) is not None:
            raise RecordValidationError(f"{restaurant.name} is already on your list.", "name")

        if existing is not None:
            logger.info("restaurant_linked_from_catalog", restaurant_id=existing.id, name=existing.name)
        else:
            created = await self.catalog.insert(restaurant)
            if not created.ok:
                return created
            existing = created.record

        link = CoupleRestaurant(couple_id=scope.couple_id, restaurant_id=existing.id)
        return await self.links.insert(link)

    async def update_restaurant(self, restaurant_id: str, data: dict[str, Any]) -> MutationResult:
        current = self.catalog.get(restaurant_id)
        if current is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        unknown = set(data) - EDITABLE_FIELDS
        if unknown:
            raise RecordValidationError(f"Cannot edit {', '.join(sorted(unknown))}.", sorted(unknown)[0])

        edited = validate_record(Restaurant, {**current.model_dump(), **data})
        return await self.catalog.update(restaurant_id, {k: getattr(edited, k) for k in data})

    async def remove_from_list(self, restaurant_id: str) -> MutationResult:
        return await self.links.remove(restaurant_id)

    async def toggle_favorite(self, restaurant_id: str) -> MutationResult:
        link = self.links.get(restaurant_id)
        if link is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        return await self.links.update(restaurant_id, {"is_favorited": not link.is_favorited})

    async def toggle_wants_to_go(self, restaurant_id: str) -> MutationResult:
        current = self.catalog.get(restaurant_id)
        if current is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        if self.me in current.wants_to_go:
            names = [n for n in current.wants_to_go if n != self.me]
        else:
            names = current.wants_to_go + [self.me]
        return await self.catalog.update(restaurant_id, {"wants_to_go": names})

    async def save_review(self, restaurant_id: str, rating: int, comment: str = "") -> MutationResult:
        """
        Raises:
            RecordValidationError: rating outside 0-5
        """
        current = self.catalog.get(restaurant_id)
        if current is None:
            return MutationResult(ok=False, operation="update", error="Record no longer exists")
        review = validate_record(Review, {"user": self.me, "rating": rating, "comment": comment.strip()})
        reviews = [r for r in current.reviews if r.user != self.me] + [review]
        return await self.catalog.update(restaurant_id, {"reviews": reviews})
