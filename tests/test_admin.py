"""Tests for profile administration."""

import pytest

from organizer.access import resolve_permitted_views
from organizer.features import ProfileAdmin
from organizer.models.profile import Role, View
from organizer.models.records import RecordValidationError
from organizer.services.storage import InMemoryGateway
from organizer.store import SubscriptionManager

from tests.conftest import COUPLE_ID


@pytest.fixture
def changed():
    return []


@pytest.fixture
async def admin(backend, gateway, subscriptions, changed):
    backend.seed("user_profiles", [
        {"email": "nicolas@example.com", "name": "Nicolas", "role": "admin", "couple_id": COUPLE_ID},
    ])
    admin = ProfileAdmin(gateway, subscriptions, on_profile_changed=changed.append)
    await admin.mount()
    yield admin
    await admin.unmount()


class TestCreateProfile:

    async def test_create(self, backend, admin):
        result = await admin.create_profile(" Ana@Example.com ", "Ana", Role.PARTNER, COUPLE_ID)
        assert result.ok
        await backend.flush()

        row = [r for r in backend.rows("user_profiles") if r["name"] == "Ana"][0]
        assert row["email"] == "ana@example.com"
        assert row["role"] == "partner"
        assert row["allowed_views"] is None
        assert [p.name for p in admin.profiles] == ["Ana", "Nicolas"]

    async def test_duplicate_email_rejected(self, admin):
        with pytest.raises(RecordValidationError) as exc:
            await admin.create_profile("NICOLAS@example.com", "Nico")
        assert exc.value.field == "email"

    @pytest.mark.parametrize("email,name", [("", "Ana"), ("not-an-email", "Ana"), ("ana@example.com", "  ")])
    async def test_invalid_input_rejected(self, backend, admin, email, name):
        with pytest.raises(RecordValidationError):
            await admin.create_profile(email, name)
        assert len(backend.rows("user_profiles")) == 1


class TestUpdateProfile:

    async def test_update_notifies_with_typed_profile(self, backend, admin, changed):
        target = "nicolas@example.com"
        result = await admin.update_profile(target, {"role": "partner", "allowed_views": ["travel", "expenses"]})
        assert result.ok

        assert changed[0].role == Role.PARTNER
        assert changed[0].allowed_views == [View.TRAVEL, View.EXPENSES]
        assert backend.rows("user_profiles")[0]["allowed_views"] == ["travel", "expenses"]

    async def test_email_conflict_rejected(self, backend, admin):
        await admin.create_profile("ana@example.com", "Ana")
        await backend.flush()
        with pytest.raises(RecordValidationError):
            await admin.update_profile("ana@example.com", {"email": "nicolas@example.com"})

    async def test_failed_update_does_not_notify(self, backend, admin, changed):
        target = "nicolas@example.com"
        backend.offline = True
        result = await admin.update_profile(target, {"name": "Nico"})
        backend.offline = False
        assert not result.ok
        assert changed == []

    async def test_unknown_profile(self, admin):
        result = await admin.update_profile("missing@example.com", {"name": "X"})
        assert not result.ok

    async def test_lookup_is_case_insensitive(self, backend, admin):
        result = await admin.update_profile(" NICOLAS@example.com", {"name": "Nico"})
        assert result.ok
        assert backend.rows("user_profiles")[0]["name"] == "Nico"

    async def test_email_change_rekeys_profile(self, backend, admin):
        result = await admin.update_profile("nicolas@example.com", {"email": "nico@example.com"})
        assert result.ok
        await backend.flush()
        assert admin.profiles.get("nicolas@example.com") is None
        assert admin.profiles.get("nico@example.com").name == "Nicolas"
        assert backend.rows("user_profiles")[0]["email"] == "nico@example.com"

    async def test_failed_email_change_restores_old_key(self, backend, admin):
        backend.offline = True
        result = await admin.update_profile("nicolas@example.com", {"email": "nico@example.com"})
        backend.offline = False
        assert not result.ok
        assert admin.profiles.keys() == ["nicolas@example.com"]


class TestAllowedViews:

    async def test_explicit_views_deduplicated(self, backend, admin, changed):
        target = "nicolas@example.com"
        await admin.set_allowed_views(target, [View.TRAVEL, View.TRAVEL, View.REMINDERS])
        assert backend.rows("user_profiles")[0]["allowed_views"] == ["travel", "reminders"]
        assert resolve_permitted_views(changed[0]) == [View.TRAVEL, View.REMINDERS]

    async def test_empty_list_falls_back_to_role(self, admin, changed):
        target = "nicolas@example.com"
        await admin.set_allowed_views(target, [])
        assert changed[0].allowed_views == []
        assert View.ADMIN in resolve_permitted_views(changed[0])


class IdlessGateway(InMemoryGateway):
    """A `user_profiles` table without an id column, keyed by email only."""

    @staticmethod
    def _strip(table, row):
        if table == "user_profiles":
            row = {k: v for k, v in row.items() if k != "id"}
        return row

    async def select(self, table, filters=None, **kwargs):
        return [self._strip(table, r) for r in await super().select(table, filters, **kwargs)]

    async def insert(self, table, row):
        return self._strip(table, await super().insert(table, row))

    async def update(self, table, changes, filters):
        return [self._strip(table, r) for r in await super().update(table, changes, filters)]


class TestProfilesWithoutIds:

    @pytest.fixture
    async def idless_admin(self, backend, changed):
        backend.seed("user_profiles", [
            {"email": "nicolas@example.com", "name": "Nicolas", "role": "admin", "couple_id": COUPLE_ID},
            {"email": "ana@example.com", "name": "Ana", "role": "partner", "couple_id": COUPLE_ID},
        ])
        gateway = IdlessGateway(backend)
        admin = ProfileAdmin(gateway, SubscriptionManager(gateway), on_profile_changed=changed.append)
        await admin.mount()
        yield admin
        await admin.unmount()

    async def test_profiles_listed_without_ids(self, idless_admin):
        assert [p.email for p in idless_admin.profiles] == ["ana@example.com", "nicolas@example.com"]
        assert all(p.id is None for p in idless_admin.profiles)

    async def test_update_touches_only_target_row(self, backend, idless_admin, changed):
        result = await idless_admin.set_allowed_views("ana@example.com", [View.TRAVEL])
        assert result.ok
        await backend.flush()

        rows = {r["email"]: r for r in backend.rows("user_profiles")}
        assert rows["ana@example.com"]["allowed_views"] == ["travel"]
        assert rows["nicolas@example.com"].get("allowed_views") is None
        assert changed[0].email == "ana@example.com"
        assert len(idless_admin.profiles) == 2

    async def test_insert_keeps_existing_profiles(self, backend, idless_admin):
        result = await idless_admin.create_profile("lucia@example.com", "Lucia", Role.PARENT)
        assert result.ok
        assert len(idless_admin.profiles) == 3
        await backend.flush()
        assert [p.name for p in idless_admin.profiles] == ["Ana", "Lucia", "Nicolas"]

    async def test_failed_update_keeps_every_profile(self, backend, idless_admin):
        backend.offline = True
        result = await idless_admin.update_profile("ana@example.com", {"name": "Aninha"})
        backend.offline = False

        assert not result.ok
        assert [p.name for p in idless_admin.profiles] == ["Ana", "Nicolas"]
