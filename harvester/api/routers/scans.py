from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, StreamingResponse

from harvester.api.deps import get_scan_service
from harvester.api.errors import ApiException
from harvester.api.responses import success_payload
from harvester.api.schemas import (
    ScanResultsEnvelope,
    ScanStartEnvelope,
    ScanStartRequest,
    ScanStatusEnvelope,
)
from harvester.logging_utils import structured_log
from harvester.services.export import records_to_csv
from harvester.services.scan.commands import (
    STATUS_ALREADY_SCANNING,
    STATUS_REJECTED,
    ScanAlreadyRunningError,
    ScanCommandService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scans", tags=["api-scans"])


@router.post(
    "",
    response_model=ScanStartEnvelope,
    status_code=202,
)
async def start_scan(
    payload: ScanStartRequest,
    request: Request,
    service: ScanCommandService = Depends(get_scan_service),
):
    outcome = await service.start(payload.post_url, nonce=payload.nonce)
    if outcome.status == STATUS_ALREADY_SCANNING:
        raise ScanAlreadyRunningError(outcome.message)
    if outcome.status == STATUS_REJECTED:
        raise ApiException(
            status_code=422,
            code="scan_precondition_failed",
            message=outcome.message,
            details={"reason": outcome.reason},
        )
    structured_log(logger, "info", "api.scan_started", post_url=payload.post_url.split("?")[0])
    return success_payload(
        request,
        data={
            "status": outcome.status,
            "nonce": outcome.nonce,
            "message": outcome.message,
        },
    )


@router.post(
    "/{nonce}/stop",
    response_model=ScanStatusEnvelope,
)
async def stop_scan(
    nonce: str,
    request: Request,
    service: ScanCommandService = Depends(get_scan_service),
):
    await service.stop(nonce)
    return success_payload(request, data=service.describe(nonce))


@router.get(
    "/{nonce}/results",
    response_model=ScanResultsEnvelope,
)
async def get_scan_results(
    nonce: str,
    request: Request,
    service: ScanCommandService = Depends(get_scan_service),
):
    records = service.current_results(nonce)
    return success_payload(
        request,
        data={
            "scan": service.describe(nonce),
            "records": [record.as_dict() for record in records],
        },
    )


@router.get("/{nonce}/events")
async def stream_scan_events(
    nonce: str,
    service: ScanCommandService = Depends(get_scan_service),
):
    return StreamingResponse(service.event_stream(nonce), media_type="text/event-stream")


@router.get("/{nonce}/export.csv")
async def export_scan_csv(
    nonce: str,
    service: ScanCommandService = Depends(get_scan_service),
):
    records = service.current_results(nonce)
    return Response(
        content=records_to_csv(records),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="comment-emails.csv"'},
    )
