"""
Shared test fixtures and pytest configuration.
"""

from datetime import date, timedelta

import pytest
import numpy as np

from chainpricer.models import PricePoint


TODAY = date(2024, 6, 3)


@pytest.fixture(autouse=True)
def set_random_seed():
    """Ensure test reproducibility."""
    np.random.seed(42)
    yield


def _make_points(closes, end_date=TODAY):
    start = end_date - timedelta(days=len(closes) - 1)
    return [
        PricePoint(
            date=start + timedelta(days=i),
            open=c,
            high=c * 1.01,
            low=c * 0.99,
            close=c,
            volume=1_000_000 + i,
        )
        for i, c in enumerate(closes)
    ]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def make_points():
    """Daily bars ending at end_date (default TODAY) with the given closes."""
    return _make_points


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
