from datetime import datetime
from typing import Optional

import requests

from stepwatch.config import REQUIRED_PERMISSIONS, STEPS_BUCKET, STEPS_WINDOW_END, STEPS_WINDOW_START
from stepwatch.models import ReadErrorKind, ServiceAvailability, StepReadResult, StepTotal, WorkflowState
from stepwatch.services.instrumentation import timed_call
from stepwatch.services.interfaces import BrokerUnavailableError

AVAILABILITY_MESSAGES = {
    ServiceAvailability.AVAILABLE: "Health data API is available",
    ServiceAvailability.UNAVAILABLE: "Health data SDK is unavailable",
    ServiceAvailability.UPDATE_REQUIRED: "Health data provider is not installed or needs an update",
}

PERMISSIONS_GRANTED_MESSAGE = "All permissions granted"
PERMISSIONS_DENIED_MESSAGE = "Permissions were not granted"


def availability_message(status: ServiceAvailability) -> str:
    return AVAILABILITY_MESSAGES[status]


def steps_message(total: int) -> str:
    return f"Steps: {total}"


def classify_read_error(exc: Exception) -> ReadErrorKind:
    if isinstance(exc, PermissionError):
        return ReadErrorKind.UNAUTHORIZED
    if isinstance(exc, requests.HTTPError):
        status_code = exc.response.status_code if exc.response is not None else None
        if status_code in (401, 403):
            return ReadErrorKind.UNAUTHORIZED
        return ReadErrorKind.UPSTREAM_HTTP
    if isinstance(exc, requests.RequestException):
        return ReadErrorKind.TRANSPORT
    if isinstance(exc, (KeyError, ValueError, TypeError)):
        return ReadErrorKind.MALFORMED_RESPONSE
    return ReadErrorKind.UNEXPECTED


class WorkflowController:
    """Drives one screen through availability, permission and the step read.

    The consent launcher is registered on construction so the consent
    subsystem can call back into this controller before it is first used.
    """

    def __init__(self, *, user_id: str, service, consent_channel, notifier, settings, logger):
        self.user_id = user_id
        self.service = service
        self.notifier = notifier
        self.settings = settings
        self.logger = logger
        self.consent = consent_channel.register(user_id)

        self.state = WorkflowState.CHECKING_AVAILABILITY
        self.availability: Optional[ServiceAvailability] = None
        self.read_result: Optional[StepReadResult] = None
        self.step_total: Optional[int] = None
        self.steps: Optional[StepTotal] = None

    def _transition(self, state: WorkflowState) -> None:
        self.logger.info(f"[workflow] user={self.user_id} {self.state.value} -> {state.value}")
        self.state = state

    def check_availability(self) -> ServiceAvailability:
        return self.service.get_status(self.settings.health_provider)

    def start(self) -> ServiceAvailability:
        """Screen start: query status fresh and show it in a dialog."""
        self.state = WorkflowState.CHECKING_AVAILABILITY
        status = self.check_availability()
        self.availability = status
        self.notifier.dialog(self.user_id, availability_message(status))
        if status != ServiceAvailability.AVAILABLE:
            self.logger.warning(f"[workflow] user={self.user_id} broker status={status.value}")
            self._transition(WorkflowState.BLOCKED)
        return status

    async def ensure_permission(self, client) -> bool:
        granted = await timed_call(
            self.logger,
            "get_granted_permissions",
            client.get_granted_permissions,
            warn_threshold_ms=self.settings.timing_warn_ms,
        )
        if REQUIRED_PERMISSIONS <= granted:
            self.logger.debug(f"[workflow] user={self.user_id} all permissions already granted")
            return True

        self.logger.debug(f"[workflow] user={self.user_id} permissions missing, launching consent")
        granted = await self.consent.launch(REQUIRED_PERMISSIONS)
        if REQUIRED_PERMISSIONS <= granted:
            self.notifier.toast(self.user_id, PERMISSIONS_GRANTED_MESSAGE)
            return True
        self.notifier.toast(self.user_id, PERMISSIONS_DENIED_MESSAGE)
        return False

    async def read_aggregated_steps(self, client, start: datetime, end: datetime) -> StepReadResult:
        try:
            buckets = await timed_call(
                self.logger,
                "aggregate_steps_by_duration",
                client.aggregate_steps_by_duration,
                start,
                end,
                STEPS_BUCKET,
                [self.settings.steps_data_origin],
                warn_threshold_ms=self.settings.timing_warn_ms,
            )
            return StepReadResult.success(sum(bucket.count or 0 for bucket in buckets))
        except Exception as exc:
            kind = classify_read_error(exc)
            self.logger.error(f"[workflow] user={self.user_id} step aggregation failed kind={kind.value}: {exc}")
            return StepReadResult.failure(kind, str(exc))

    async def read_step_records(self, client, start: datetime, end: datetime) -> StepReadResult:
        try:
            records = await timed_call(
                self.logger,
                "read_step_records",
                client.read_step_records,
                start,
                end,
                warn_threshold_ms=self.settings.timing_warn_ms,
            )
            return StepReadResult.success(sum(record.count for record in records))
        except Exception as exc:
            kind = classify_read_error(exc)
            self.logger.error(f"[workflow] user={self.user_id} step record read failed kind={kind.value}: {exc}")
            return StepReadResult.failure(kind, str(exc))

    async def read_steps(self, client) -> StepReadResult:
        if self.settings.steps_read_mode == "records":
            return await self.read_step_records(client, STEPS_WINDOW_START, STEPS_WINDOW_END)
        return await self.read_aggregated_steps(client, STEPS_WINDOW_START, STEPS_WINDOW_END)

    async def run(self) -> Optional[int]:
        """Dialog acknowledged: ensure permission, read, display. None when blocked."""
        if self.state != WorkflowState.CHECKING_AVAILABILITY:
            self.logger.info(f"[workflow] user={self.user_id} acknowledge ignored in state={self.state.value}")
            return self.step_total

        try:
            client = self.service.open_client(self.user_id)
        except BrokerUnavailableError as exc:
            self.logger.warning(f"[workflow] user={self.user_id} {exc}")
            self._transition(WorkflowState.BLOCKED)
            return None

        self._transition(WorkflowState.AWAITING_PERMISSION_DECISION)
        if not await self.ensure_permission(client):
            self._transition(WorkflowState.BLOCKED)
            return None

        # The handle is recreated for the read
        try:
            client = self.service.open_client(self.user_id)
        except BrokerUnavailableError as exc:
            self.logger.warning(f"[workflow] user={self.user_id} {exc}")
            self._transition(WorkflowState.BLOCKED)
            return None

        self._transition(WorkflowState.READING)
        self.read_result = await self.read_steps(client)
        self.step_total = self.read_result.display_total()
        self.steps = StepTotal(count=self.step_total, start=STEPS_WINDOW_START, end=STEPS_WINDOW_END)
        self.notifier.toast(self.user_id, steps_message(self.step_total))
        self._transition(WorkflowState.DONE)
        return self.step_total
