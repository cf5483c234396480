from __future__ import annotations

from collections.abc import Iterator

import pytest

from harvester.logging_context import set_request_id, set_scan_id


@pytest.fixture(autouse=True)
def reset_logging_context() -> Iterator[None]:
    yield
    set_request_id(None)
    set_scan_id(None)
