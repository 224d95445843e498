import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

import requests
from fastapi import FastAPI, HTTPException, Query
from fastapi.concurrency import run_in_threadpool

from stepwatch.config import Settings
from stepwatch.firebase_client import create_token_store_from_env
from stepwatch.models import ScreenSnapshot
from stepwatch.providers.google_oauth import GoogleOAuthClient, OAuthConfigurationError
from stepwatch.services.broker import GoogleFitHealthService
from stepwatch.services.consent import ConsentChannel
from stepwatch.services.notifications import NotificationQueue
from stepwatch.services.sessions import ScreenSessionRegistry


def configure_logging(settings: Settings) -> logging.Logger:
    # Log to both file and console
    log_formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    file_handler = RotatingFileHandler(settings.log_file, maxBytes=2*1024*1024, backupCount=2)
    file_handler.setFormatter(log_formatter)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)

    logger = logging.getLogger("stepwatch")
    logger.setLevel(settings.log_level)
    logger.handlers = []  # Remove any default handlers
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    return logger


def create_app(
    settings: Optional[Settings] = None,
    *,
    logger: Optional[logging.Logger] = None,
    token_store=None,
    service=None,
    oauth_client=None,
) -> FastAPI:
    if settings is None:
        settings = Settings.from_env()
    if logger is None:
        logger = configure_logging(settings)
    if token_store is None:
        token_store = create_token_store_from_env(settings, logger=logger)
    if service is None:
        service = GoogleFitHealthService(settings=settings, token_store=token_store, logger=logger)
    if oauth_client is None:
        oauth_client = GoogleOAuthClient(settings)

    notifier = NotificationQueue()
    consent_channel = ConsentChannel(url_builder=oauth_client.authorization_url, logger=logger)
    sessions = ScreenSessionRegistry(
        service=service,
        consent_channel=consent_channel,
        notifier=notifier,
        settings=settings,
        logger=logger,
    )

    app = FastAPI(title="Step Count Screen Service")
    app.state.settings = settings
    app.state.sessions = sessions
    app.state.consent_channel = consent_channel

    def _session_or_404(user_id: str):
        try:
            return sessions.get(user_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc))

    @app.post("/screen/{user_id}/start", response_model=ScreenSnapshot)
    async def screen_start(user_id: str):
        session = sessions.open(user_id)
        return session.start()

    @app.post("/screen/{user_id}/dialog/ok", response_model=ScreenSnapshot)
    async def screen_dialog_ok(user_id: str):
        session = _session_or_404(user_id)
        try:
            return await session.acknowledge()
        except OAuthConfigurationError as exc:
            raise HTTPException(status_code=500, detail=str(exc))

    @app.get("/screen/{user_id}", response_model=ScreenSnapshot)
    async def screen_state(user_id: str):
        return _session_or_404(user_id).snapshot()

    @app.delete("/screen/{user_id}")
    async def screen_close(user_id: str):
        if not sessions.close(user_id):
            raise HTTPException(status_code=404, detail=f"No screen session for user '{user_id}'")
        return {"status": "closed", "user_id": user_id}

    @app.get("/oauth/google/callback", response_model=ScreenSnapshot)
    async def google_oauth_callback(
        state: str = Query(...),
        code: Optional[str] = Query(None),
        error: Optional[str] = Query(None),
    ):
        user_id = consent_channel.owner_of(state)
        if user_id is None:
            raise HTTPException(status_code=400, detail="Unknown or expired consent state")

        granted = frozenset()
        if error or not code:
            logger.info(f"[consent] user={user_id} declined consent error={error}")
        else:
            try:
                tok = await run_in_threadpool(oauth_client.exchange_code, code)
            except OAuthConfigurationError as exc:
                raise HTTPException(status_code=500, detail=str(exc))
            except requests.RequestException as exc:
                logger.error(f"[consent] user={user_id} code exchange failed: {exc}")
            else:
                await run_in_threadpool(token_store.save_tokens, settings.health_provider, user_id, tok)
                granted = frozenset(str(tok.get("scope") or "").split())

        # The screen may have been restarted during the code exchange
        if not consent_channel.resolve(state, granted):
            raise HTTPException(status_code=400, detail="Unknown or expired consent state")
        session = _session_or_404(user_id)
        await session.wait()
        return session.snapshot()

    return app
