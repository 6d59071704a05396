"""Thin ingress boundary helpers for the HTTP entry point.

Centralises the transport concerns so that ``function_app.py`` contains
only trigger bindings and handoff:

- **extract_upload**: pulls the package bytes, filename, MIME type and
  uploader out of a multipart form or a raw request body.
- **error_response_body** / **status_for_error**: map the exception
  taxonomy onto HTTP status codes and stable JSON bodies.
- **get_ingest_context**: builds the ``IngestContext`` from the
  environment once per worker process.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from plot_ingest.core.deadline import DeadlineExceededError
from plot_ingest.core.exceptions import PipelineError, ValidationError

if TYPE_CHECKING:
    from plot_ingest.core.context import IngestContext

logger = logging.getLogger("plot_ingest.core.ingress")

FORM_FIELD = "file"
FILENAME_HEADER = "X-Filename"
FILENAME_PARAM = "filename"
USER_HEADER = "X-User-Id"


class UploadRequestError(ValidationError):
    """Raised when a request carries no usable upload."""

    default_stage = "ingress"
    default_code = "UPLOAD_MISSING"


@dataclass(frozen=True, slots=True)
class Upload:
    """One uploaded package as received at the boundary.

    Attributes:
        filename: Client-supplied filename.
        content: Raw package bytes.
        content_type: Client-supplied MIME type of the package.
        uploaded_by: Value of the ``X-User-Id`` header, if any.
    """

    filename: str
    content: bytes
    content_type: str = ""
    uploaded_by: str = ""


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------


def extract_upload(req: Any) -> Upload:
    """Extract the uploaded package from an ``azure.functions.HttpRequest``.

    A multipart form field named ``file`` wins; otherwise the raw body
    is used with the filename taken from the ``X-Filename`` header or
    the ``filename`` query parameter.

    Raises:
        UploadRequestError: If the request carries no file content.
    """
    headers = req.headers or {}
    uploaded_by = str(headers.get(USER_HEADER, "") or "").strip()

    files = getattr(req, "files", None) or {}
    part = files.get(FORM_FIELD)
    if part is not None:
        content = part.read()
        filename = str(part.filename or "")
        content_type = str(part.content_type or "")
    else:
        content = req.get_body() or b""
        filename = str(headers.get(FILENAME_HEADER, "") or req.params.get(FILENAME_PARAM, "") or "")
        content_type = str(headers.get("Content-Type", "") or "")

    if not content:
        msg = f"No file uploaded; send a multipart '{FORM_FIELD}' field or a raw body"
        raise UploadRequestError(msg)
    if not filename:
        msg = f"Missing filename; set the {FILENAME_HEADER} header or ?{FILENAME_PARAM}="
        raise UploadRequestError(msg)

    logger.debug(
        "Upload extracted | file=%s | bytes=%d | content_type=%s | user=%s",
        filename,
        len(content),
        content_type,
        uploaded_by or "-",
    )
    return Upload(
        filename=filename,
        content=content,
        content_type=content_type,
        uploaded_by=uploaded_by,
    )


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def status_for_error(exc: BaseException) -> int:
    """HTTP status for an exception raised by the pipeline."""
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, DeadlineExceededError):
        return 504
    return 500


def error_response_body(exc: BaseException) -> dict[str, object]:
    """JSON body for an error response.

    Validation failures carry every human-readable problem under
    ``errors``; other pipeline errors carry their structured dict.
    """
    if isinstance(exc, PipelineError):
        messages = list(getattr(exc, "errors", None) or [exc.message])
        return {"errors": messages, "error": exc.to_error_dict()}
    return {
        "errors": ["Internal server error"],
        "error": {"category": "unexpected", "code": "INTERNAL_ERROR"},
    }


# ---------------------------------------------------------------------------
# Context factory
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=1)
def get_ingest_context() -> IngestContext:
    """Build the ``IngestContext`` from environment variables (once per worker).

    Raises:
        ConfigValidationError: If the configuration is invalid.
    """
    from plot_ingest.core.context import IngestContext

    context = IngestContext.from_env()
    logger.info(
        "Ingest context ready | decoder=%s | store=%s | timeout=%gs",
        context.config.decoder,
        context.config.feature_store,
        context.config.processing_timeout_s,
    )
    return context
