from __future__ import annotations

import pytest

from tests.fakes import AlertRecorder, FakeClock


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def alerts() -> AlertRecorder:
    return AlertRecorder()
