"""
Tests for the sync progress tracker and cancellation tokens.
"""

import pytest

from ftth_common.exceptions import SyncCancelled
from ftth_common.sync_progress import STAGE_CANCELLING, SyncProgress, SyncProgressTracker


@pytest.fixture
def tracker() -> SyncProgressTracker:
    return SyncProgressTracker()


class TestUpdate:
    def test_creates_record(self, tracker):
        record = tracker.update("42", stage="login", current=0)

        assert record.stage == "login"
        assert record.current == 0
        assert record.started_at is not None
        assert record.updated_at == record.started_at
        assert tracker.read("42") == record

    def test_merges_into_existing(self, tracker):
        tracker.update("42", stage="fetching_pages", current=10, total=100, message="page 1")
        record = tracker.update("42", current=20)

        assert record.stage == "fetching_pages"
        assert record.current == 20
        assert record.total == 100
        assert record.message == "page 1"

    def test_explicit_values_overwrite(self, tracker):
        tracker.update("42", current=50, total=100)
        record = tracker.update("42", current=0, total=None)

        assert record.current == 0
        assert record.total is None

    def test_started_at_is_kept_and_updated_at_moves(self, tracker):
        first = tracker.update("42", stage="login")
        second = tracker.update("42", stage="fetching_pages")

        assert second.started_at == first.started_at
        assert second.updated_at >= first.updated_at

    def test_keys_are_normalized_to_strings(self, tracker):
        tracker.update(42, stage="login")

        assert tracker.read("42").stage == "login"
        assert tracker.keys() == ["42"]

    def test_unknown_field(self, tracker):
        with pytest.raises(ValueError, match="bogus"):
            tracker.update("42", bogus=1)

    def test_keys_are_independent(self, tracker):
        tracker.update("1", stage="login")
        tracker.update("2", stage="completed")

        assert tracker.read("1").stage == "login"
        assert tracker.read("2").stage == "completed"

    def test_clear(self, tracker):
        tracker.update("42", stage="login")
        tracker.clear("42")
        tracker.clear("missing")

        assert tracker.read("42") is None


class TestPercentage:
    @pytest.mark.parametrize(
        "current, total, expected",
        [(0, 100, 0.0), (25, 100, 25.0), (1, 3, 33.3), (150, 100, 100.0), (5, None, 0.0), (5, 0, 0.0)],
    )
    def test_percentage(self, current, total, expected):
        assert SyncProgress(current=current, total=total).percentage == expected

    def test_percentage_is_serialized(self):
        assert SyncProgress(current=1, total=2).model_dump()["percentage"] == 50.0


class TestCancellation:
    def test_request_keeps_stage(self, tracker):
        tracker.update("42", stage="fetching_pages", current=3)

        record = tracker.request_cancellation("42", "stop please")

        assert tracker.is_cancelled("42")
        assert record.stage == "fetching_pages"
        assert record.current == 3
        assert record.message == "stop please"

    def test_request_without_record(self, tracker):
        record = tracker.request_cancellation("42")

        assert record.stage == STAGE_CANCELLING
        assert record.cancel_requested

    def test_clear_cancellation_resets_flag_only(self, tracker):
        tracker.update("42", stage="fetching_pages", message="busy")
        tracker.request_cancellation("42", "stop")

        tracker.clear_cancellation("42")

        record = tracker.read("42")
        assert not record.cancel_requested
        assert record.stage == "fetching_pages"
        assert record.message == "stop"

    def test_clear_cancellation_without_record(self, tracker):
        tracker.clear_cancellation("42")
        assert tracker.read("42") is None

    def test_cancellation_is_per_key(self, tracker):
        tracker.request_cancellation("1")

        assert tracker.is_cancelled("1")
        assert not tracker.is_cancelled("2")

    def test_token(self, tracker):
        token = tracker.token(42)
        token.raise_if_cancelled()
        assert not token.cancelled

        tracker.request_cancellation("42", "user pressed stop")

        assert token.cancelled
        with pytest.raises(SyncCancelled, match="user pressed stop"):
            token.raise_if_cancelled()
