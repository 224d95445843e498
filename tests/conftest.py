"""Shared fixtures: settings, a fake health-data broker and a consent channel."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

import pytest

from stepwatch.config import READ_STEPS, Settings
from stepwatch.models import AggregateBucket, ServiceAvailability, StepRecord
from stepwatch.services.consent import ConsentChannel
from stepwatch.services.interfaces import BrokerUnavailableError
from stepwatch.services.notifications import NotificationQueue


def make_buckets(counts: List[Optional[int]]) -> List[AggregateBucket]:
    """Consecutive one-day buckets starting 2024-01-01."""
    start = datetime(2024, 1, 1)
    return [
        AggregateBucket(
            start=start + timedelta(days=i),
            end=start + timedelta(days=i + 1),
            count=count,
        )
        for i, count in enumerate(counts)
    ]


class FakeHealthClient:
    def __init__(self, *, granted=frozenset(), buckets=None, records=None, error: Optional[Exception] = None):
        self.granted = frozenset(granted)
        self.buckets = buckets or []
        self.records = records or []
        self.error = error
        self.permission_calls = 0
        self.aggregate_calls = []
        self.record_calls = []

    async def get_granted_permissions(self):
        self.permission_calls += 1
        return self.granted

    async def aggregate_steps_by_duration(self, start, end, slice_duration, origins):
        self.aggregate_calls.append((start, end, slice_duration, list(origins)))
        if self.error is not None:
            raise self.error
        return self.buckets

    async def read_step_records(self, start, end):
        self.record_calls.append((start, end))
        if self.error is not None:
            raise self.error
        return self.records


class FakeHealthService:
    def __init__(self, client: FakeHealthClient, status: ServiceAvailability = ServiceAvailability.AVAILABLE):
        self.client = client
        self.status = status
        self.status_checks = 0
        self.opened = 0

    def get_status(self, provider: str) -> ServiceAvailability:
        self.status_checks += 1
        return self.status

    def open_client(self, user_id: str) -> FakeHealthClient:
        if self.status != ServiceAvailability.AVAILABLE:
            raise BrokerUnavailableError(self.status)
        self.opened += 1
        return self.client


@pytest.fixture
def logger():
    return logging.getLogger("stepwatch.tests")


@pytest.fixture
def settings():
    return Settings(
        google_client_id="client-id",
        google_client_secret="client-secret",
        google_redirect_uri="http://localhost:8000/oauth/google/callback",
    )


@pytest.fixture
def notifier():
    return NotificationQueue()


@pytest.fixture
def consent_channel(logger):
    return ConsentChannel(
        url_builder=lambda state, scopes: f"https://consent.test/auth?state={state}",
        logger=logger,
    )


@pytest.fixture
def granted_all():
    return frozenset({READ_STEPS})


@pytest.fixture
def step_records():
    return [
        StepRecord(start=datetime(2024, 1, 1, 8), end=datetime(2024, 1, 1, 9), count=1200),
        StepRecord(start=datetime(2024, 1, 2, 8), end=datetime(2024, 1, 2, 9), count=800),
    ]
