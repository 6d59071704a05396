"""Azure Functions entry point: Shapefile Plot Ingestion.

This module registers the HTTP functions using the Python v2
programming model.

All business logic lives in the plot_ingest package. This file is purely
the wiring layer between Azure Functions bindings and application code.
"""

from __future__ import annotations

import json
import logging

import azure.functions as func

from plot_ingest.core.exceptions import PipelineError
from plot_ingest.core.ingress import (
    error_response_body,
    extract_upload,
    get_ingest_context,
    status_for_error,
)

app = func.FunctionApp(http_auth_level=func.AuthLevel.FUNCTION)

logger = logging.getLogger("plot_ingest.function_app")

_JSON = "application/json"


def _json_response(body: object, status_code: int) -> func.HttpResponse:
    return func.HttpResponse(json.dumps(body), status_code=status_code, mimetype=_JSON)


# ---------------------------------------------------------------------------
# HTTP: Upload a shapefile package
# ---------------------------------------------------------------------------


@app.function_name("create_import")
@app.route(route="imports", methods=["POST"])
def create_import(req: func.HttpRequest) -> func.HttpResponse:
    """Import the uploaded ``.zip`` shapefile package.

    Accepts a multipart form field ``file`` or a raw body with the
    filename in ``X-Filename`` / ``?filename=``. ``X-User-Id`` is
    recorded as the uploader.

    Returns:
        201 with the import report (``status`` may be ``failed`` when the
        store refused rows), 400 with ``{"errors": [...]}`` for rejected
        input, 504 when the deadline elapsed, 500 otherwise.
    """
    from plot_ingest.orchestrators.ingest_pipeline import run_import

    try:
        upload = extract_upload(req)
        context = get_ingest_context()

        logger.info(
            "Upload received | file=%s | bytes=%d | user=%s",
            upload.filename,
            len(upload.content),
            upload.uploaded_by or "-",
        )

        report = run_import(
            upload.content,
            filename=upload.filename,
            context=context,
            content_type=upload.content_type,
            uploaded_by=upload.uploaded_by,
        )
    except PipelineError as exc:
        status = status_for_error(exc)
        if status >= 500:
            logger.error(
                "Import failed | code=%s | stage=%s | import=%s | error=%s",
                exc.code,
                exc.stage,
                exc.correlation_id,
                exc.message,
            )
        else:
            logger.info(
                "Upload rejected | code=%s | stage=%s | error=%s",
                exc.code,
                exc.stage,
                exc.message,
            )
        return _json_response(error_response_body(exc), status)
    except Exception as exc:
        logger.exception("Unexpected error while importing upload")
        return _json_response(error_response_body(exc), 500)

    return _json_response(report, 201)


# ---------------------------------------------------------------------------
# HTTP: Import status
# ---------------------------------------------------------------------------


@app.function_name("get_import")
@app.route(route="imports/{import_id}", methods=["GET"])
def get_import(req: func.HttpRequest) -> func.HttpResponse:
    """Return the stored import record (status, counts, metadata)."""
    import_id = req.route_params.get("import_id", "")
    if not import_id:
        return _json_response({"errors": ["Missing import_id"]}, 400)

    try:
        record = get_ingest_context().feature_store.get_import(import_id)
    except PipelineError as exc:
        logger.error("Import lookup failed | import=%s | error=%s", import_id, exc.message)
        return _json_response(error_response_body(exc), status_for_error(exc))

    if record is None:
        return _json_response({"errors": [f"Import {import_id} not found"]}, 404)
    return _json_response(record, 200)
