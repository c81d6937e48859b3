from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ScanStatus(str, Enum):
    QUEUED = "Queued"
    RUNNING = "Running"
    COMPLETED = "Completed"
    ERROR = "Error"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.ERROR)


# Allowed forward moves; terminal states have none.
_TRANSITIONS = {
    ScanStatus.QUEUED: frozenset({ScanStatus.RUNNING}),
    ScanStatus.RUNNING: frozenset({ScanStatus.COMPLETED, ScanStatus.ERROR}),
    ScanStatus.COMPLETED: frozenset(),
    ScanStatus.ERROR: frozenset(),
}


class InvalidTransitionError(ValueError):
    pass


class StatusUpdate(BaseModel):
    """Notification emitted on every scan job transition."""
    scan_id: str
    status: ScanStatus
    base_request_id: str
    base_request_url: Optional[str] = None


class ScanJob(BaseModel):
    """One queued-to-terminal lifecycle for a base request."""
    scan_id: str
    base_request_id: str
    base_request_url: Optional[str] = None
    status: ScanStatus = ScanStatus.QUEUED
    submitted_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
    )

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def advance(self, status: ScanStatus) -> None:
        """Move to *status*; the state machine never regresses."""
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"scan {self.scan_id}: {self.status.value} -> {status.value} not allowed"
            )
        self.status = status

    def to_update(self) -> StatusUpdate:
        return StatusUpdate(
            scan_id=self.scan_id,
            status=self.status,
            base_request_id=self.base_request_id,
            base_request_url=self.base_request_url,
        )
