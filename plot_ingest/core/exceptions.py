"""Pipeline exception taxonomy.

Every error raised by an ingestion stage or a feature-store adapter
derives from ``PipelineError`` and carries the stage, a stable code, a
retry flag and the import id it belongs to. The HTTP boundary maps the
category onto a status code; the pipeline copies ``message`` into the
import record when a run is aborted.

Categories
----------
- ``validation``: the upload itself is unacceptable (``ValidationError``).
  Reported back as 400 with every problem listed.
- ``permanent``: the run cannot finish (``PermanentError``, deadline).
- ``transient``: any other error raised with ``retryable=True``, such as
  a lost database connection.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all ingestion errors.

    Attributes:
        message: Human-readable error description.
        stage: Stage that raised (``"read_archive"``, ``"feature_store"`` ...).
        code: Machine-readable error code (e.g. ``"ARCHIVE_TOO_LARGE"``).
        retryable: Whether the same upload may succeed if sent again.
        correlation_id: Import id, set once the import record exists.
    """

    default_stage: str = ""
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        correlation_id: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.correlation_id = correlation_id
        super().__init__(message)

    @property
    def category(self) -> str:
        if isinstance(self, ValidationError):
            return "validation"
        if self.retryable:
            return "transient"
        return "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Structured payload for HTTP error bodies and log records."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "correlation_id": self.correlation_id,
        }


class ValidationError(PipelineError):
    """The upload or its content was rejected. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs["retryable"] = False
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(PipelineError):
    """The run was abandoned and re-sending the same upload will not help."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs["retryable"] = False
        super().__init__(message, **kwargs)  # type: ignore[arg-type]
