"""
Tests for RedemptionService.

End-to-end redemption of access keys into tickets over the in-memory store.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from app.exceptions import (
    AccessKeyNotFoundError,
    AlreadyUsedError,
    ConflictError,
    DuplicateTicketError,
    ExhaustedError,
    ExpiredError,
    TransportError,
)
from app.services.event_details import EventDetailsService, EventDetailsUpdate
from app.services.redemption import RedemptionService
from app.services.tickets import TicketService


class TestRedeem:
    """Tests for the redemption workflow."""

    async def test_redeem_single_use_key(self, store, seed_key) -> None:
        key_id = seed_key("ABC12345")
        service = RedemptionService(store)

        result = await service.redeem("ABC12345", "u1", "Test Student")

        assert result.remaining_uses == 0
        assert result.ticket.user_id == "u1"
        assert result.ticket.is_scanned is False
        assert result.ticket.access_key_code == "ABC12345"
        assert store.value(f"accessKeys/{key_id}")["usedBy"] == ["u1"]

    async def test_key_cannot_be_redeemed_by_second_user(self, store, seed_key) -> None:
        seed_key("ABC12345")
        service = RedemptionService(store)
        await service.redeem("ABC12345", "u1", "One")

        with pytest.raises(ExhaustedError):
            await service.redeem("ABC12345", "u2", "Two")

        assert await TicketService(store).list_user_tickets("u2") == []

    async def test_same_user_same_key_twice(self, store, seed_key) -> None:
        """Repeat redemption is stopped by the one-ticket rule before the key is touched."""
        key_id = seed_key("MULTI1234", max_uses=5)
        service = RedemptionService(store)
        await service.redeem("MULTI1234", "u1", "One")
        version = store.version(f"accessKeys/{key_id}")

        with pytest.raises(DuplicateTicketError):
            await service.redeem("MULTI1234", "u1", "One")

        assert store.version(f"accessKeys/{key_id}") == version

    async def test_user_in_used_by_gets_already_used(self, store, seed_key) -> None:
        """A user recorded on the key but holding no ticket is refused the key again."""
        seed_key("MULTI1234", max_uses=5, used_by=["u1"])
        service = RedemptionService(store)

        with pytest.raises(AlreadyUsedError):
            await service.redeem("MULTI1234", "u1", "One")

    async def test_second_ticket_with_different_key_rejected(self, store, seed_key) -> None:
        seed_key("FIRSTKEY1")
        second_key_id = seed_key("SECONDKEY2")
        service = RedemptionService(store)
        await service.redeem("FIRSTKEY1", "u1", "One")

        with pytest.raises(DuplicateTicketError):
            await service.redeem("SECONDKEY2", "u1", "One")

        # The second key was not burned
        assert store.value(f"accessKeys/{second_key_id}")["usedCount"] == 0
        assert len(await TicketService(store).list_user_tickets("u1")) == 1

    async def test_expired_key_issues_no_ticket(self, store, seed_key) -> None:
        seed_key("OLDKEY123", expires_at=datetime.now(UTC) - timedelta(days=1))
        service = RedemptionService(store)

        with pytest.raises(ExpiredError):
            await service.redeem("OLDKEY123", "u1", "One")

        assert await TicketService(store).list_user_tickets("u1") == []

    async def test_unknown_key(self, store) -> None:
        service = RedemptionService(store)

        with pytest.raises(AccessKeyNotFoundError):
            await service.redeem("NOPE1234", "u1", "One")

    async def test_lowercase_code_redeems(self, store, seed_key) -> None:
        seed_key("ABC12345")
        service = RedemptionService(store)

        result = await service.redeem("abc12345", "u1", "One")

        assert result.ticket.access_key_code == "ABC12345"

    async def test_ticket_snapshot_survives_event_edit(self, store, seed_key) -> None:
        seed_key("ABC12345")
        service = RedemptionService(store)
        result = await service.redeem("ABC12345", "u1", "One")

        await EventDetailsService(store).update_event_details(
            EventDetailsUpdate(
                event_name="Renamed Party",
                event_date="2025-11-01",
                start_time="19:00",
                end_time="23:00",
                venue="Main Hall",
                price="500",
                currency="INR",
                dress_code="Formal",
                description="Moved",
            ),
            updated_by="admin-1",
        )

        ticket = await TicketService(store).find_ticket(result.ticket.ticket_id)
        assert ticket is not None
        assert ticket.event_name == "Freshers Welcome 2025"
        assert ticket.venue == "Mysterious Location"
        assert ticket.price == "300"


class TestCompensatingRelease:
    """Tests for giving the key back when no ticket could be issued."""

    async def test_failed_issue_releases_key(self, store, seed_key) -> None:
        key_id = seed_key("ABC12345")
        service = RedemptionService(store)

        with patch.object(
            service.tickets,
            "issue_ticket",
            new_callable=AsyncMock,
            side_effect=TransportError("append", "connection reset"),
        ):
            with pytest.raises(TransportError):
                await service.redeem("ABC12345", "u1", "One")

        stored = store.value(f"accessKeys/{key_id}")
        assert stored["usedCount"] == 0
        assert stored["usedBy"] == []

        # The key is usable again
        result = await service.redeem("ABC12345", "u1", "One")
        assert result.remaining_uses == 0

    async def test_failed_release_raises_original_error(self, store, seed_key) -> None:
        seed_key("ABC12345")
        service = RedemptionService(store)

        with (
            patch.object(
                service.tickets,
                "issue_ticket",
                new_callable=AsyncMock,
                side_effect=DuplicateTicketError("u1", "t-other"),
            ),
            patch.object(
                service.access_keys,
                "release_key",
                new_callable=AsyncMock,
                side_effect=ConflictError("accessKeys/x"),
            ) as mock_release,
        ):
            with pytest.raises(DuplicateTicketError):
                await service.redeem("ABC12345", "u1", "One")

        mock_release.assert_awaited_once()

    async def test_index_write_failure_keeps_ticket_and_key_use(self, store, seed_key) -> None:
        key_id = seed_key("ABC12345")
        service = RedemptionService(store)
        original_put = store.put

        async def put_without_index(path, value):
            if path.startswith("ticketIndex/"):
                raise TransportError("put", "connection reset")
            return await original_put(path, value)

        with patch.object(store, "put", side_effect=put_without_index):
            result = await service.redeem("ABC12345", "u1", "One")

        stored = store.value(f"accessKeys/{key_id}")
        assert stored["usedCount"] == 1
        assert stored["usedBy"] == ["u1"]
        assert f"ticketIndex/{result.ticket.ticket_id}" not in store.documents

        # The key stays consumed for everyone else
        with pytest.raises(ExhaustedError):
            await service.redeem("ABC12345", "u2", "Two")
        assert len(await TicketService(store).list_all_tickets()) == 1

        # The ticket is still found through the tree walk
        found = await TicketService(store).find_ticket(result.ticket.ticket_id)
        assert found is not None
        assert found.user_id == "u1"
