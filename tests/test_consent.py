import asyncio

import pytest

from stepwatch.config import READ_STEPS
from stepwatch.services.consent import ConsentNotRegisteredError


def state_of(launcher) -> str:
    return launcher.consent_url.split("state=")[1]


class TestConsentChannel:
    @pytest.mark.asyncio
    async def test_launch_returns_granted_subset(self, consent_channel):
        launcher = consent_channel.register("u1")
        task = asyncio.create_task(launcher.launch({READ_STEPS}))
        await launcher.pending.wait()

        assert consent_channel.owner_of(state_of(launcher)) == "u1"
        assert consent_channel.resolve(state_of(launcher), {READ_STEPS, "other-scope"})
        assert await task == frozenset({READ_STEPS})
        assert launcher.consent_url is None
        assert not launcher.pending.is_set()

    @pytest.mark.asyncio
    async def test_resolve_unknown_state(self, consent_channel):
        consent_channel.register("u1")
        assert consent_channel.resolve("not-a-state", {READ_STEPS}) is False

    @pytest.mark.asyncio
    async def test_resolve_twice_is_rejected(self, consent_channel):
        launcher = consent_channel.register("u1")
        task = asyncio.create_task(launcher.launch({READ_STEPS}))
        await launcher.pending.wait()
        state = state_of(launcher)

        assert consent_channel.resolve(state, set())
        assert await task == frozenset()
        assert consent_channel.resolve(state, {READ_STEPS}) is False

    @pytest.mark.asyncio
    async def test_abandon_cancels_pending_prompt(self, consent_channel):
        launcher = consent_channel.register("u1")
        task = asyncio.create_task(launcher.launch({READ_STEPS}))
        await launcher.pending.wait()
        state = state_of(launcher)

        assert consent_channel.abandon("u1") == 1
        with pytest.raises(asyncio.CancelledError):
            await task
        assert consent_channel.owner_of(state) is None

    @pytest.mark.asyncio
    async def test_launch_requires_registration(self, consent_channel):
        launcher = consent_channel.register("u1")
        consent_channel.unregister("u1")

        with pytest.raises(ConsentNotRegisteredError):
            await launcher.launch({READ_STEPS})
