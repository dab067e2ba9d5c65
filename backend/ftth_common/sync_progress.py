"""
In-memory progress and cancellation state for long-running sync jobs.

A sync job (for example paging through an external account's customers)
reports its progress here, and polling clients read it back. Records live in
process memory only, keyed by the requesting identity (the external account id
as a string), and are independent across keys.

Cancellation is cooperative. ``request_cancellation`` only raises a flag; the
job checks its CancellationToken at defined checkpoints (between pages) and
stops itself. In-flight upstream calls are never interrupted.

Merge semantics:
    update() merges the supplied fields into the existing record. Fields that
    are not supplied keep their value; fields that are supplied always
    overwrite, including ``current`` and ``total``.

Usage:
    ```python
    tracker = SyncProgressTracker()
    tracker.update("42", stage="fetching", current=10, total=100)
    tracker.update("42", current=20)           # total stays 100
    tracker.request_cancellation("42", "stop")  # stage stays "fetching"

    token = tracker.token("42")
    token.raise_if_cancelled()                  # raises SyncCancelled
    ```
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, computed_field

from ftth_common.exceptions import SyncCancelled

STAGE_CANCELLING = "cancelling"
STAGE_CANCELLED = "cancelled"
STAGE_COMPLETED = "completed"
STAGE_FAILED = "failed"
TERMINAL_STAGES = frozenset({STAGE_CANCELLED, STAGE_COMPLETED, STAGE_FAILED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncProgress(BaseModel):
    """
    Progress of one sync job.

    Attributes:
        stage: Free-form stage name, e.g. "login", "fetching", "completed".
        current: Items processed so far.
        total: Items expected in total, when known.
        message: Human readable status line.
        cancel_requested: Set by request_cancellation, read by the job.
        phone_found: Customers whose phone number was found so far.
    """

    stage: str | None = None
    current: int | None = None
    total: int | None = None
    message: str | None = None
    cancel_requested: bool = False
    phone_found: int | None = None
    started_at: datetime | None = None
    updated_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def percentage(self) -> float:
        if not self.total or self.total <= 0 or not self.current:
            return 0.0
        return round(min(self.current / self.total, 1.0) * 100, 1)


UPDATABLE_FIELDS = frozenset(
    {"stage", "current", "total", "message", "cancel_requested", "phone_found"}
)


class CancellationToken:
    """Handed to a job so it can check for cancellation at its checkpoints."""

    def __init__(self, tracker: "SyncProgressTracker", user_id: str) -> None:
        self._tracker = tracker
        self.user_id = user_id

    @property
    def cancelled(self) -> bool:
        return self._tracker.is_cancelled(self.user_id)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            record = self._tracker.read(self.user_id)
            raise SyncCancelled(self.user_id, record.message if record else None)


class SyncProgressTracker:
    """Process-local map from identity to SyncProgress."""

    def __init__(self) -> None:
        self._records: dict[str, SyncProgress] = {}

    def update(self, user_id: Any, **fields: Any) -> SyncProgress:
        """
        Merge ``fields`` into the record of ``user_id``, creating it if absent.

        ``started_at`` is set when the record is created; ``updated_at`` is
        stamped on every call.

        Raises:
            ValueError: An unknown field name was supplied.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown sync progress fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        key = str(user_id)
        now = _utcnow()
        existing = self._records.get(key)
        if existing is None:
            record = SyncProgress(started_at=now, updated_at=now, **fields)
        else:
            record = existing.model_copy(update={**fields, "updated_at": now})
        self._records[key] = record
        return record

    def read(self, user_id: Any) -> SyncProgress | None:
        return self._records.get(str(user_id))

    def clear(self, user_id: Any) -> None:
        self._records.pop(str(user_id), None)

    def request_cancellation(self, user_id: Any, message: str = "Cancellation requested") -> SyncProgress:
        """Raise the cancellation flag. The stage is kept, or "cancelling" if there is none."""
        existing = self.read(user_id)
        stage = existing.stage if existing and existing.stage else STAGE_CANCELLING
        return self.update(user_id, cancel_requested=True, stage=stage, message=message)

    def clear_cancellation(self, user_id: Any) -> None:
        """Reset the cancellation flag without touching the rest of the record."""
        if self.read(user_id) is not None:
            self.update(user_id, cancel_requested=False)

    def is_cancelled(self, user_id: Any) -> bool:
        record = self.read(user_id)
        return bool(record and record.cancel_requested)

    def token(self, user_id: Any) -> CancellationToken:
        return CancellationToken(self, str(user_id))

    def keys(self) -> list[str]:
        return list(self._records)
