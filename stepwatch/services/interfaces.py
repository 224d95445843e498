from datetime import datetime, timedelta
from typing import FrozenSet, Iterable, List, Protocol

from stepwatch.models import AggregateBucket, ServiceAvailability, StepRecord


class BrokerUnavailableError(RuntimeError):
    """Raised when a client handle is requested while the broker is not available."""

    def __init__(self, status: ServiceAvailability):
        super().__init__(f"Health data broker is not available (status={status.value})")
        self.status = status


class HealthClient(Protocol):
    async def get_granted_permissions(self) -> FrozenSet[str]:
        ...

    async def aggregate_steps_by_duration(
        self,
        start: datetime,
        end: datetime,
        slice_duration: timedelta,
        origins: Iterable[str],
    ) -> List[AggregateBucket]:
        ...

    async def read_step_records(self, start: datetime, end: datetime) -> List[StepRecord]:
        ...


class HealthDataService(Protocol):
    def get_status(self, provider: str) -> ServiceAvailability:
        ...

    def open_client(self, user_id: str) -> HealthClient:
        ...
