"""Shared fixtures for unit tests."""

from unittest.mock import patch

import pytest


class FakeClock:
    """Stands in for time.time/time.sleep; sleeping advances the clock."""

    def __init__(self, now=1_000.0):
        self.now = now
        self.sleeps = []

    def time(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    """Patch time.time and time.sleep as seen by the client and rate limiter."""
    fake = FakeClock()
    with patch("github_repo_analyzer.rate_limit.time.time", fake.time), patch(
        "github_repo_analyzer.rate_limit.time.sleep", fake.sleep
    ):
        yield fake
