from harvester.api.schemas.common import ApiErrorData, ApiErrorEnvelope, ApiMeta
from harvester.api.schemas.scans import (
    EmailRecordData,
    ScanCountersData,
    ScanResultsData,
    ScanResultsEnvelope,
    ScanStartData,
    ScanStartEnvelope,
    ScanStartRequest,
    ScanStatusData,
    ScanStatusEnvelope,
)

__all__ = [
    "ApiErrorData",
    "ApiErrorEnvelope",
    "ApiMeta",
    "EmailRecordData",
    "ScanCountersData",
    "ScanResultsData",
    "ScanResultsEnvelope",
    "ScanStartData",
    "ScanStartEnvelope",
    "ScanStartRequest",
    "ScanStatusData",
    "ScanStatusEnvelope",
]
