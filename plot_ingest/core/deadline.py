"""Deadline and cancellation signal for input-bound stages.

The archive reader and feature decoder touch arbitrarily large external
input. Both accept an optional ``Deadline`` and call ``check()`` at
every member / record boundary so that an oversized or pathological
package cannot hold the caller indefinitely.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from plot_ingest.core.exceptions import PermanentError


class DeadlineExceededError(PermanentError):
    """Raised when a run outlives its deadline or is cancelled."""

    default_code = "DEADLINE_EXCEEDED"


@dataclass(slots=True)
class Deadline:
    """A monotonic-clock deadline with an optional cancellation event.

    Attributes:
        expires_at: ``time.monotonic()`` value after which ``check()``
            raises, or ``None`` for no time limit.
        cancel_event: Set by the caller to abort the run early.
    """

    expires_at: float | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def after(cls, seconds: float | None) -> Deadline:
        """Create a deadline *seconds* from now (``None`` or ``0`` = unlimited)."""
        if not seconds:
            return cls()
        return cls(expires_at=time.monotonic() + seconds)

    @property
    def remaining(self) -> float | None:
        """Seconds left before expiry, or ``None`` when unlimited."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    def cancel(self) -> None:
        self.cancel_event.set()

    def check(self, stage: str = "") -> None:
        """Raise ``DeadlineExceededError`` if cancelled or expired."""
        if self.cancel_event.is_set():
            msg = "Import cancelled by caller"
            raise DeadlineExceededError(msg, stage=stage, code="IMPORT_CANCELLED")
        if self.expired:
            msg = "Import processing deadline exceeded"
            raise DeadlineExceededError(msg, stage=stage)
