from __future__ import annotations

from typing import AsyncIterator

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import StreamingResponse

from rulecheck.application import get_analysis_service
from rulecheck.core.errors import ValidationError
from rulecheck.core.schema import ApiEnvelope, ProgressEvent
from rulecheck.core.uploads import discard_upload, parse_rules, save_upload, validate_content_type

router = APIRouter(prefix="/pdf-analyze", tags=["analysis"])


def _frame(event: ProgressEvent) -> str:
    return f"data: {event.model_dump_json()}\n\n"


@router.post("")
async def start_analysis(
    file: UploadFile | None = File(default=None),
    rules: str | None = Form(default=None),
) -> dict:
    """Store an uploaded PDF and start analysing it in the background."""
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")

    service = get_analysis_service()
    try:
        validate_content_type(file.content_type)
        rule_list = parse_rules(rules)
        stored = save_upload(
            service.settings.uploads_root,
            file.filename,
            file.file,
            max_bytes=service.settings.max_upload_bytes,
        )
        try:
            analysis_id = service.start_analysis(stored, file.filename, rule_list)
        except Exception:
            discard_upload(stored)
            raise
    finally:
        await file.close()

    return ApiEnvelope(
        status=200,
        message="PDF analysis started",
        data={"fileName": file.filename, "analysisId": analysis_id},
    ).model_dump()


@router.get("/status/{analysis_id}")
async def analysis_status(analysis_id: str, request: Request) -> StreamingResponse:
    """Relay progress events for one analysis as server-sent events."""
    service = get_analysis_service()
    snapshot, subscription = service.subscribe(analysis_id)

    async def event_stream() -> AsyncIterator[str]:
        try:
            yield _frame(snapshot)
            if snapshot.is_terminal:
                return
            async for event in subscription:
                yield _frame(event)
                if event.is_terminal or await request.is_disconnected():
                    break
        finally:
            service.unsubscribe(analysis_id, subscription)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
