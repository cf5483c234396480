from __future__ import annotations

from datetime import datetime, timezone

from fastapi.testclient import TestClient
import pytest

from harvester.main import app
from harvester.services.records.types import EmailRecord
from harvester.services.scan.commands import (
    STATUS_ALREADY_SCANNING,
    STATUS_REJECTED,
    STATUS_STARTED,
    ScanCommandService,
    StartOutcome,
)
from harvester.services.scan.events import ScanEventPublisher
from harvester.services.scan.session import ScanPhase, ScanSession

from tests.unit.helpers import (
    POST_URL,
    FakeDomDriver,
    FakeEnvironment,
    FakeEnvironmentFactory,
    FakeReplaySource,
    fast_scan_config,
)

NONCE = "api-nonce-123456"


class FakeScanService(ScanCommandService):
    """Real lookups over a preloaded session; start returns a canned outcome."""

    def __init__(self, outcome: StartOutcome | None = None) -> None:
        super().__init__(
            environment_factory=FakeEnvironmentFactory(FakeEnvironment(FakeDomDriver(), FakeReplaySource())),
            config=fast_scan_config(),
            publisher=ScanEventPublisher(),
        )
        self.outcome = outcome or StartOutcome(status=STATUS_STARTED, nonce=NONCE, message="Scan started.")
        self.started_with: list[tuple[str, str | None]] = []

    async def start(self, post_url: str, *, nonce: str | None = None) -> StartOutcome:
        self.started_with.append((post_url, nonce))
        return self.outcome

    def load_session(self) -> ScanSession:
        session = ScanSession(token=NONCE, post_url=POST_URL, config=fast_scan_config())
        session.phase = ScanPhase.COMPLETE
        session.status_message = "Complete"
        session.store.merge(
            EmailRecord(
                email="jane@acme.io",
                author_name="Jane Doe",
                author_title="=Head of Growth",
                profile_url="https://www.linkedin.com/in/jane-doe",
                post_url=POST_URL,
                extracted_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
                comment_snippet="jane@acme.io",
            )
        )
        self._session = session
        return session


@pytest.fixture
def service(monkeypatch: pytest.MonkeyPatch) -> FakeScanService:
    fake = FakeScanService()
    monkeypatch.setattr(app.state, "scan_service", fake, raising=False)
    return fake


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def test_start_scan_returns_accepted(service: FakeScanService, client: TestClient) -> None:
    response = client.post("/api/v1/scans", json={"post_url": POST_URL, "nonce": NONCE})

    assert response.status_code == 202
    body = response.json()
    assert body["data"] == {"status": "started", "nonce": NONCE, "message": "Scan started."}
    assert body["meta"]["request_id"]
    assert service.started_with == [(POST_URL, NONCE)]


def test_start_scan_conflicts_while_scanning(service: FakeScanService, client: TestClient) -> None:
    service.outcome = StartOutcome(status=STATUS_ALREADY_SCANNING, message="A scan is already running.")

    response = client.post("/api/v1/scans", json={"post_url": POST_URL})

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "already_scanning"


def test_start_scan_reports_failed_precondition(service: FakeScanService, client: TestClient) -> None:
    service.outcome = StartOutcome(
        status=STATUS_REJECTED,
        message="Please log in to LinkedIn first.",
        reason="logged_out",
    )

    response = client.post("/api/v1/scans", json={"post_url": POST_URL})

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "scan_precondition_failed"
    assert error["message"] == "Please log in to LinkedIn first."
    assert error["details"] == {"reason": "logged_out"}


def test_start_scan_validates_body(service: FakeScanService, client: TestClient) -> None:
    response = client.post("/api/v1/scans", json={"post_url": POST_URL, "nonce": "short", "extra": 1})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"
    assert service.started_with == []


def test_results_require_matching_nonce(service: FakeScanService, client: TestClient) -> None:
    service.load_session()

    response = client.get("/api/v1/scans/wrong-nonce-0000/results")
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "scan_token_mismatch"

    events = client.get("/api/v1/scans/wrong-nonce-0000/events")
    assert events.status_code == 403


def test_results_return_records_and_status(service: FakeScanService, client: TestClient) -> None:
    service.load_session()

    response = client.get(f"/api/v1/scans/{NONCE}/results")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["scan"]["phase"] == "complete"
    assert data["scan"]["counters"]["emails_found"] == 1
    assert [record["email"] for record in data["records"]] == ["jane@acme.io"]
    assert data["records"][0]["source_type"] == "comment"


def test_stop_returns_status(service: FakeScanService, client: TestClient) -> None:
    service.load_session()

    response = client.post(f"/api/v1/scans/{NONCE}/stop")

    assert response.status_code == 200
    assert response.json()["data"]["nonce"] == NONCE
    assert response.json()["data"]["scanning"] is False


def test_unknown_scan_is_not_found(service: FakeScanService, client: TestClient) -> None:
    response = client.post(f"/api/v1/scans/{NONCE}/stop")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "scan_not_found"


def test_export_csv(service: FakeScanService, client: TestClient) -> None:
    service.load_session()

    response = client.get(f"/api/v1/scans/{NONCE}/export.csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0].startswith('"email","author_name"')
    assert "\"'=Head of Growth\"" in lines[1]


def test_missing_service_is_unavailable(monkeypatch: pytest.MonkeyPatch, client: TestClient) -> None:
    monkeypatch.setattr(app.state, "scan_service", None, raising=False)

    response = client.get(f"/api/v1/scans/{NONCE}/results")

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "scan_service_unavailable"
