"""
Couple Partition Check

Couple-scoped features (expenses, recurring expenses, goals, monthly
closings, trips) read and write only rows carrying the signed-in
profile's couple id. Before such a screen renders any data, the gate
checks that the partition is actually usable:

1. The profile has a couple id at all
2. Every couple-scoped table has the couple_id column
3. No legacy row has a null couple_id

The states are evaluated in that order and are mutually exclusive. Only
READY lets the normal view render.
"""

from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from organizer.audit.logger import AuditLogger
from organizer.models.audit import AuditEventBuilder
from organizer.models.profile import UserProfile
from organizer.services.storage.interface import (
    DataGateway,
    Filter,
    GatewayUnavailableError,
    Row,
    SchemaError,
    StorageError,
)


logger = structlog.get_logger(__name__)

PARTITION_COLUMN = "couple_id"

COUPLE_SCOPED_TABLES = ["expenses", "recurring_expenses", "goals", "monthly_closings", "trips"]


class TenancyState(str, Enum):
    PROFILE_WITHOUT_COUPLE = "profile_without_couple"
    COLUMN_MISSING = "column_missing"
    MIGRATION_NEEDED = "migration_needed"
    CONFIGURATION_ERROR = "configuration_error"
    UNAVAILABLE = "unavailable"
    READY = "ready"


GUIDANCE: dict[TenancyState, str] = {
    TenancyState.PROFILE_WITHOUT_COUPLE: (
        "Your profile is not linked to a couple yet. Ask an administrator to set "
        "the couple id on your profile."
    ),
    TenancyState.COLUMN_MISSING: (
        "The database predates shared couple data. Add a `couple_id uuid` column to: {tables}."
    ),
    TenancyState.MIGRATION_NEEDED: (
        "Some rows in {tables} have no couple id. Set `couple_id` on them before "
        "they can be shown."
    ),
    TenancyState.CONFIGURATION_ERROR: (
        "A table needed by this screen is missing or not readable: {tables}. "
        "Check the database setup."
    ),
    TenancyState.UNAVAILABLE: "Could not reach the database. Try again in a moment.",
    TenancyState.READY: "",
}


class TenancyCheck(BaseModel):
    """Result of the partition check for one screen mount."""

    state: TenancyState
    couple_id: Optional[str] = None
    tables: list[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.state == TenancyState.READY

    @property
    def guidance(self) -> str:
        return GUIDANCE[self.state].format(tables=", ".join(self.tables))


class PartitionScope:
    """Scopes reads and stamps writes with one couple id."""

    def __init__(self, couple_id: str):
        if not couple_id:
            raise ValueError("couple_id is required")
        self.couple_id = couple_id

    def filters(self, *extra: Filter) -> list[Filter]:
        return [Filter.eq(PARTITION_COLUMN, self.couple_id), *extra]

    def stamp(self, row: Row) -> Row:
        stamped = dict(row)
        stamped[PARTITION_COLUMN] = self.couple_id
        return stamped

    def owns(self, row: dict[str, Any]) -> bool:
        return row.get(PARTITION_COLUMN) == self.couple_id


class TenancyGate:
    """Runs the partition check against the remote schema and data."""

    def __init__(
        self,
        gateway: DataGateway,
        tables: Optional[list[str]] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self._gateway = gateway
        self._tables = list(tables or COUPLE_SCOPED_TABLES)
        self._audit = audit

    async def check(self, profile: UserProfile) -> TenancyCheck:
        if not profile.couple_id:
            return await self._tripped(TenancyCheck(state=TenancyState.PROFILE_WITHOUT_COUPLE))

        couple_id = profile.couple_id
        try:
            missing = [
                table for table in self._tables
                if not await self._gateway.has_column(table, PARTITION_COLUMN)
            ]
            if missing:
                return await self._tripped(TenancyCheck(
                    state=TenancyState.COLUMN_MISSING, couple_id=couple_id, tables=missing,
                ))

            legacy = []
            for table in self._tables:
                rows = await self._gateway.select(
                    table, [Filter.is_null(PARTITION_COLUMN)], columns=PARTITION_COLUMN, limit=1,
                )
                if rows:
                    legacy.append(table)
            if legacy:
                return await self._tripped(TenancyCheck(
                    state=TenancyState.MIGRATION_NEEDED, couple_id=couple_id, tables=legacy,
                ))
        except SchemaError as e:
            return await self._tripped(TenancyCheck(
                state=TenancyState.CONFIGURATION_ERROR,
                couple_id=couple_id,
                tables=[e.table] if e.table else [],
                error=str(e),
            ))
        except (GatewayUnavailableError, StorageError) as e:
            logger.warning("tenancy_check_unavailable", error=str(e))
            return TenancyCheck(state=TenancyState.UNAVAILABLE, couple_id=couple_id, error=str(e))

        return TenancyCheck(state=TenancyState.READY, couple_id=couple_id)

    async def _tripped(self, result: TenancyCheck) -> TenancyCheck:
        logger.warning("tenancy_gate_tripped", state=result.state.value, tables=result.tables)
        if self._audit:
            await self._audit.log(AuditEventBuilder.tenancy_gate_tripped(
                result.state.value, result.tables, result.couple_id,
            ))
        return result
