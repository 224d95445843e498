import asyncio
from typing import Dict, Optional

from stepwatch.models import ScreenSnapshot, WorkflowState
from stepwatch.services.workflow import WorkflowController


class ScreenSession:
    """One visible screen: a controller plus the task running its workflow."""

    def __init__(self, controller: WorkflowController, notifier):
        self.controller = controller
        self.notifier = notifier
        self._task: Optional[asyncio.Task] = None

    @property
    def user_id(self) -> str:
        return self.controller.user_id

    def start(self) -> ScreenSnapshot:
        self.controller.start()
        return self.snapshot()

    async def acknowledge(self) -> ScreenSnapshot:
        """Dialog OK. Returns once the workflow is done or waiting on consent."""
        if self.controller.state == WorkflowState.BLOCKED:
            return self.snapshot()
        if self._task is None:
            self._task = asyncio.create_task(self.controller.run())
        waiter = asyncio.create_task(self.controller.consent.pending.wait())
        try:
            await asyncio.wait({self._task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if self._task.done() and not self._task.cancelled():
            # Surface unexpected workflow failures
            self._task.result()
        return self.snapshot()

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.shield(self._task)

    def snapshot(self) -> ScreenSnapshot:
        result = self.controller.read_result
        return ScreenSnapshot(
            user_id=self.user_id,
            state=self.controller.state,
            availability=self.controller.availability,
            consent_url=self.controller.consent.consent_url,
            step_total=self.controller.step_total,
            steps=self.controller.steps,
            read_error=result.error if result is not None else None,
            notifications=self.notifier.pop_all(self.user_id),
        )

    def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.notifier.discard(self.user_id)


class ScreenSessionRegistry:
    def __init__(self, *, service, consent_channel, notifier, settings, logger):
        self.service = service
        self.consent_channel = consent_channel
        self.notifier = notifier
        self.settings = settings
        self.logger = logger
        self._sessions: Dict[str, ScreenSession] = {}

    def open(self, user_id: str) -> ScreenSession:
        self.close(user_id)
        controller = WorkflowController(
            user_id=user_id,
            service=self.service,
            consent_channel=self.consent_channel,
            notifier=self.notifier,
            settings=self.settings,
            logger=self.logger,
        )
        session = ScreenSession(controller, self.notifier)
        self._sessions[user_id] = session
        return session

    def get(self, user_id: str) -> ScreenSession:
        if user_id not in self._sessions:
            raise KeyError(f"No screen session for user '{user_id}'")
        return self._sessions[user_id]

    def close(self, user_id: str) -> bool:
        session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        self.consent_channel.unregister(user_id)
        session.close()
        self.logger.info(f"[screen] closed user={user_id}")
        return True
