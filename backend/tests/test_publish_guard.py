"""
Tests for the publish capacity gate
"""
import asyncio
from unittest.mock import patch

import pytest

from core.exceptions import InsufficientBalanceError, NotFoundError, OwnershipError
from services.locks import balance_locks
from services.publish_guard import (
    apply_event_patch, check_publish_capacity, evaluate_capacity, guard_applies, next_capacity, publish_event
)

from conftest import TEST_USER, OTHER_USER

USER = TEST_USER["id"]


def run_async(coro):
    """Helper to run async coroutines in sync tests."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestGuardScope:
    """Which patches are gated"""

    def test_publishing_a_draft_is_gated(self):
        assert guard_applies({"status": "draft"}, {"status": "published"})

    def test_cosmetic_patch_on_draft_is_not_gated(self):
        assert not guard_applies({"status": "draft"}, {"max_guests": 500})

    def test_capacity_or_type_change_on_published_is_gated(self):
        published = {"status": "published"}
        assert guard_applies(published, {"max_guests": 10})
        assert guard_applies(published, {"invitation_type": "email:classic"})
        assert not guard_applies(published, {"title_text": "New title"})

    def test_next_capacity_falls_back_to_stored_values(self):
        event = {"max_guests": 30, "invitation_type": "Email:Classic"}
        assert next_capacity(event, {}) == (30, "email")
        assert next_capacity(event, {"max_guests": 45, "invitation_type": "url"}) == (45, "url")


class TestCapacityGate:
    """purchased 100, another published event holding 40"""

    @pytest.fixture
    def setup(self, ledger, events, balance, make_event):
        balance("url", 100)
        make_event(status="published", max_guests=40)
        return make_event(status="draft", max_guests=0)

    def test_publish_over_available_is_rejected(self, ledger, events, setup):
        check = run_async(check_publish_capacity(
            ledger, events, setup["id"], USER, {"status": "published", "max_guests": 61}
        ))
        assert check.ok is False
        assert check.needed == 61
        assert check.available == 60
        assert check.message

    def test_publish_at_exact_available_is_accepted(self, ledger, events, setup):
        check = run_async(check_publish_capacity(
            ledger, events, setup["id"], USER, {"status": "published", "max_guests": 60}
        ))
        assert check.ok is True

    def test_rejected_patch_mutates_nothing(self, ledger, events, setup):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            run_async(apply_event_patch(
                ledger, events, setup["id"], USER, {"status": "published", "max_guests": 61}
            ))

        err = exc_info.value
        assert err.status_code == 402
        assert err.details["needed"] == 61
        assert err.details["available"] == 60
        assert err.details["shortfall"] == 1
        stored = events.events[setup["id"]]
        assert stored["status"] == "draft"
        assert stored["max_guests"] == 0

    def test_accepted_patch_publishes(self, ledger, events, setup):
        updated = run_async(apply_event_patch(
            ledger, events, setup["id"], USER, {"status": "published", "max_guests": 60}
        ))
        assert updated["status"] == "published"
        assert updated["max_guests"] == 60
        assert updated["updated_at"]

    def test_other_product_types_do_not_count(self, ledger, events, balance, setup, make_event):
        make_event(status="published", max_guests=90, invitation_type="email:classic")
        check = run_async(check_publish_capacity(
            ledger, events, setup["id"], USER, {"status": "published", "max_guests": 60}
        ))
        assert check.ok is True


class TestSelfExclusion:
    """An already published event is not counted against itself"""

    def test_repatch_of_published_event_within_balance(self, ledger, events, balance, make_event):
        balance("url", 45)
        event = make_event(status="published", max_guests=40)

        updated = run_async(apply_event_patch(ledger, events, event["id"], USER, {"max_guests": 45}))
        assert updated["max_guests"] == 45

    def test_repatch_beyond_balance_is_rejected(self, ledger, events, balance, make_event):
        balance("url", 45)
        event = make_event(status="published", max_guests=40)

        with pytest.raises(InsufficientBalanceError):
            run_async(apply_event_patch(ledger, events, event["id"], USER, {"max_guests": 46}))
        assert events.events[event["id"]]["max_guests"] == 40

    def test_type_change_is_checked_against_new_type(self, ledger, events, balance, make_event):
        balance("url", 100)
        balance("email", 10)
        event = make_event(status="published", max_guests=40)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            run_async(apply_event_patch(
                ledger, events, event["id"], USER, {"invitation_type": "email:classic"}
            ))
        assert exc_info.value.details["product_type"] == "email"
        assert exc_info.value.details["available"] == 10

    def test_non_capacity_patch_on_overdrawn_event_passes(self, ledger, events, balance, make_event):
        balance("url", 10)
        event = make_event(status="published", max_guests=40)

        updated = run_async(apply_event_patch(ledger, events, event["id"], USER, {"title_text": "Renamed"}))
        assert updated["title_text"] == "Renamed"


class TestGuardErrors:
    def test_missing_event(self, ledger, events):
        with pytest.raises(NotFoundError):
            run_async(check_publish_capacity(ledger, events, "missing", USER, {"status": "published"}))

    def test_foreign_event(self, ledger, events, make_event):
        event = make_event(user_id=OTHER_USER["id"])
        with pytest.raises(OwnershipError):
            run_async(apply_event_patch(ledger, events, event["id"], USER, {"status": "published"}))

    def test_publish_without_balance_row(self, ledger, events, make_event):
        event = make_event(max_guests=1)
        with pytest.raises(InsufficientBalanceError) as exc_info:
            run_async(publish_event(ledger, events, event["id"], USER))
        assert exc_info.value.details["available"] == 0


class TestConcurrentPublish:
    """Concurrent publishes against the same credits cannot both pass"""

    def test_only_one_of_two_competing_publishes_succeeds(self, ledger, events, balance, make_event):
        balance("url", 100)
        first = make_event(max_guests=60)
        second = make_event(max_guests=60)

        async def publish_both():
            return await asyncio.gather(
                publish_event(ledger, events, first["id"], USER),
                publish_event(ledger, events, second["id"], USER),
                return_exceptions=True,
            )

        results = run_async(publish_both())

        assert sum(1 for r in results if isinstance(r, InsufficientBalanceError)) == 1
        assert sum(1 for r in results if isinstance(r, dict)) == 1
        published = [e for e in events.events.values() if e["status"] == "published"]
        assert len(published) == 1
        assert len(balance_locks) == 0

    def test_type_change_while_waiting_moves_to_the_new_lock(self, ledger, events, balance, make_event):
        balance("url", 100)
        balance("email", 10)
        event = make_event(max_guests=50, invitation_type="url:classic")
        held_during_check = []

        async def recording_evaluate(ledger_, events_, event_, user_id, patch_):
            _, product_type = next_capacity(event_, patch_)
            held_during_check.append((product_type, balance_locks.locked(user_id, product_type)))
            return await evaluate_capacity(ledger_, events_, event_, user_id, patch_)

        async def switch_type():
            async with balance_locks.hold(USER, "url"):
                await asyncio.sleep(0.01)
                events.events[event["id"]]["invitation_type"] = "email:classic"

        async def race():
            return await asyncio.gather(
                switch_type(),
                publish_event(ledger, events, event["id"], USER),
                return_exceptions=True,
            )

        with patch("services.publish_guard.evaluate_capacity", side_effect=recording_evaluate):
            results = run_async(race())

        assert isinstance(results[1], InsufficientBalanceError)
        assert results[1].details["product_type"] == "email"
        assert held_during_check == [("email", True)]
        assert events.events[event["id"]]["status"] == "draft"
        assert len(balance_locks) == 0
