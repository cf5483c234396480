from __future__ import annotations

from fastapi import Request

from harvester.api.errors import ApiException
from harvester.services.scan.commands import ScanCommandService


def get_scan_service(request: Request) -> ScanCommandService:
    service = getattr(request.app.state, "scan_service", None)
    if service is None:
        raise ApiException(
            status_code=503,
            code="scan_service_unavailable",
            message="Scan service is not running.",
        )
    return service
