import asyncio
import secrets
from typing import Callable, Dict, FrozenSet, Iterable, Optional


class ConsentNotRegisteredError(RuntimeError):
    pass


class ConsentLauncher:
    """Per-user consent handle, registered before the screen becomes interactive."""

    def __init__(self, channel: "ConsentChannel", user_id: str):
        self._channel = channel
        self.user_id = user_id
        self.consent_url: Optional[str] = None
        self._pending = asyncio.Event()

    @property
    def pending(self) -> asyncio.Event:
        """Set while a consent prompt is waiting on the user."""
        return self._pending

    async def launch(self, capabilities: Iterable[str]) -> FrozenSet[str]:
        """Show the consent prompt and wait for the granted subset of `capabilities`."""
        requested = frozenset(capabilities)
        state, future = self._channel._open(self.user_id)
        try:
            self.consent_url = self._channel.build_url(state, requested)
            self._pending.set()
            granted = await future
        finally:
            self._pending.clear()
            self.consent_url = None
            self._channel._forget(state)
        return frozenset(granted) & requested


class ConsentChannel:
    def __init__(self, *, url_builder: Callable[[str, FrozenSet[str]], str], logger):
        self._url_builder = url_builder
        self.logger = logger
        self._launchers: Dict[str, ConsentLauncher] = {}
        self._futures: Dict[str, "asyncio.Future[FrozenSet[str]]"] = {}
        self._owners: Dict[str, str] = {}

    def register(self, user_id: str) -> ConsentLauncher:
        launcher = ConsentLauncher(self, user_id)
        self._launchers[user_id] = launcher
        return launcher

    def unregister(self, user_id: str) -> None:
        self.abandon(user_id)
        self._launchers.pop(user_id, None)

    def build_url(self, state: str, capabilities: FrozenSet[str]) -> str:
        return self._url_builder(state, capabilities)

    def _open(self, user_id: str):
        if user_id not in self._launchers:
            raise ConsentNotRegisteredError(f"No consent launcher registered for user '{user_id}'")
        state = secrets.token_urlsafe(16)
        future = asyncio.get_running_loop().create_future()
        self._futures[state] = future
        self._owners[state] = user_id
        self.logger.info(f"[consent] prompt opened user={user_id}")
        return state, future

    def _forget(self, state: str) -> None:
        self._futures.pop(state, None)
        self._owners.pop(state, None)

    def owner_of(self, state: str) -> Optional[str]:
        return self._owners.get(state)

    def resolve(self, state: str, granted: Iterable[str]) -> bool:
        """Complete the prompt identified by `state`. Returns False for unknown or stale states."""
        future = self._futures.get(state)
        if future is None or future.done():
            self.logger.warning("[consent] resolve for unknown or completed state ignored")
            return False
        granted_set = frozenset(granted)
        future.set_result(granted_set)
        self.logger.info(f"[consent] prompt resolved user={self._owners.get(state)} granted={len(granted_set)}")
        return True

    def abandon(self, user_id: str) -> int:
        abandoned = 0
        for state, owner in list(self._owners.items()):
            if owner != user_id:
                continue
            future = self._futures.get(state)
            if future is not None and not future.done():
                future.cancel()
                abandoned += 1
            self._forget(state)
        if abandoned:
            self.logger.info(f"[consent] abandoned {abandoned} pending prompt(s) user={user_id}")
        return abandoned
