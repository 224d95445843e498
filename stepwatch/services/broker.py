from datetime import datetime, timedelta
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from fastapi.concurrency import run_in_threadpool

from stepwatch.config import KNOWN_PROVIDERS, STEP_COUNT_DATA_TYPE
from stepwatch.models import AggregateBucket, ServiceAvailability, StepRecord
from stepwatch.providers.google_fit import GoogleFitClient
from stepwatch.services.interfaces import BrokerUnavailableError


def _to_millis(value: datetime) -> int:
    # Naive datetimes are local wall-clock time
    return int(value.timestamp() * 1000)


def _from_millis(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000)


def _from_nanos(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value) / 1_000_000_000)


def _origin_matches(point: Dict[str, Any], origins: FrozenSet[str]) -> bool:
    # originDataSourceId looks like "raw:com.google.step_count.delta:<package>:<stream>"
    origin_id = str(point.get("originDataSourceId", ""))
    return any(origin in origin_id.split(":") for origin in origins)


def _point_steps(point: Dict[str, Any]) -> int:
    return sum(int(value["intVal"]) for value in point.get("value", []) if "intVal" in value)


def parse_aggregate_buckets(payload: Dict[str, Any], origins: Iterable[str]) -> List[AggregateBucket]:
    """Turn a `dataset:aggregate` response into buckets restricted to `origins`."""
    wanted = frozenset(origins)
    buckets = []
    for raw in payload["bucket"]:
        count: Optional[int] = None
        for dataset in raw.get("dataset", []):
            for point in dataset.get("point", []):
                if wanted and not _origin_matches(point, wanted):
                    continue
                count = (count or 0) + _point_steps(point)
        buckets.append(
            AggregateBucket(
                start=_from_millis(raw["startTimeMillis"]),
                end=_from_millis(raw["endTimeMillis"]),
                count=count,
            )
        )
    return buckets


def parse_step_records(payload: Dict[str, Any]) -> List[StepRecord]:
    return [
        StepRecord(
            start=_from_nanos(point["startTimeNanos"]),
            end=_from_nanos(point["endTimeNanos"]),
            count=_point_steps(point),
            origin=point.get("originDataSourceId"),
        )
        for point in payload.get("point", [])
    ]


class GoogleFitHealthClient:
    """Handle onto one user's Google Fit data. Blocking HTTP runs in the threadpool."""

    def __init__(self, *, user_id: str, settings, token_store, logger):
        self.user_id = user_id
        self.settings = settings
        self.token_store = token_store
        self.logger = logger

    def _load_tokens(self) -> Optional[Dict[str, Any]]:
        return self.token_store.get_tokens(self.settings.health_provider, self.user_id)

    def _fit_client(self) -> GoogleFitClient:
        tokens = self._load_tokens()
        if not tokens or not tokens.get("access_token"):
            raise PermissionError(f"No Google Fit tokens stored for user '{self.user_id}'")
        return GoogleFitClient(
            tokens,
            client_id=self.settings.google_client_id,
            client_secret=self.settings.google_client_secret,
            user_id=self.user_id,
            token_store=self.token_store,
            provider=self.settings.health_provider,
            timeout=self.settings.http_timeout_seconds,
        )

    async def get_granted_permissions(self) -> FrozenSet[str]:
        tokens = await run_in_threadpool(self._load_tokens)
        if not tokens:
            return frozenset()
        return frozenset(str(tokens.get("scope") or "").split())

    async def aggregate_steps_by_duration(
        self,
        start: datetime,
        end: datetime,
        slice_duration: timedelta,
        origins: Iterable[str],
    ) -> List[AggregateBucket]:
        client = await run_in_threadpool(self._fit_client)
        bucket_ms = int(slice_duration.total_seconds() * 1000)
        payload = await run_in_threadpool(
            client.aggregate_by_duration,
            STEP_COUNT_DATA_TYPE,
            _to_millis(start),
            _to_millis(end),
            bucket_ms,
        )
        buckets = parse_aggregate_buckets(payload, origins)
        self.logger.debug(f"[google_fit] user={self.user_id} buckets={len(buckets)}")
        return buckets

    async def read_step_records(self, start: datetime, end: datetime) -> List[StepRecord]:
        client = await run_in_threadpool(self._fit_client)
        payload = await run_in_threadpool(
            client.fetch_dataset,
            self.settings.steps_data_source_id,
            _to_millis(start) * 1_000_000,
            _to_millis(end) * 1_000_000,
        )
        return parse_step_records(payload)


class GoogleFitHealthService:
    def __init__(self, *, settings, token_store, logger):
        self.settings = settings
        self.token_store = token_store
        self.logger = logger

    def get_status(self, provider: str) -> ServiceAvailability:
        if provider.lower() not in KNOWN_PROVIDERS:
            return ServiceAvailability.UNAVAILABLE
        if not self.settings.oauth_configured:
            return ServiceAvailability.UPDATE_REQUIRED
        return ServiceAvailability.AVAILABLE

    def open_client(self, user_id: str) -> GoogleFitHealthClient:
        status = self.get_status(self.settings.health_provider)
        if status != ServiceAvailability.AVAILABLE:
            raise BrokerUnavailableError(status)
        return GoogleFitHealthClient(
            user_id=user_id,
            settings=self.settings,
            token_store=self.token_store,
            logger=self.logger,
        )
