from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

# Wednesday
T0 = datetime(2024, 1, 3, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, moment: datetime) -> datetime:
        self.now = moment
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
