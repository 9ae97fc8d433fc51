"""HTTP API for the dashboard.

Every route sits behind HTTP Basic auth. Write routes answer with the
``{success, message?, data?}`` envelope: 200 when the operation succeeded,
400 when it was refused. Only unexpected faults produce a 500.
"""

from __future__ import annotations

import logging
import secrets
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel

from sentiscope import __version__
from sentiscope.core.analytics import SentimentAnalytics
from sentiscope.core.models import DISCORD, InboundMessage, OperationResult, RecentMessageFilter
from sentiscope.service import PlatformService, SettingsUpdate, settings_to_dict

LOGGER = logging.getLogger(__name__)

_security = HTTPBasic()


class SettingsRequest(BaseModel):
    group_id: Optional[str] = None
    token: Optional[str] = None
    is_active: Optional[bool] = None
    monitor_all_channels: Optional[bool] = None
    analysis_frequency: Optional[str] = None
    logging_enabled: Optional[bool] = None
    notifications_enabled: Optional[bool] = None


class GroupRequest(BaseModel):
    group_id: Optional[str] = None


class MonitorRequest(BaseModel):
    channel_id: str
    group_id: Optional[str] = None
    monitor: bool = True


class ExcludeUserRequest(BaseModel):
    user_id: str
    group_id: Optional[str] = None
    display_name: str = ""
    reason: Optional[str] = None


class WebhookMessage(BaseModel):
    message_id: Optional[str] = None
    channel_id: Optional[str] = None
    guild_id: Optional[str] = None
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    content: Optional[str] = None
    timestamp: Optional[datetime] = None
    author_is_bot: bool = False
    channel_name: str = ""


def _envelope(result: OperationResult) -> JSONResponse:
    code = status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=code, content=result.as_dict())


def create_app(
    services: dict[str, PlatformService],
    analytics: SentimentAnalytics,
    username: str,
    password: Optional[str],
) -> FastAPI:
    """Build the FastAPI app around already-wired services."""

    def require_auth(credentials: HTTPBasicCredentials = Depends(_security)) -> str:
        valid_user = secrets.compare_digest(credentials.username.encode("utf-8"), username.encode("utf-8"))
        valid_password = password is not None and secrets.compare_digest(
            credentials.password.encode("utf-8"), password.encode("utf-8")
        )
        if not (valid_user and valid_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
                headers={"WWW-Authenticate": "Basic"},
            )
        return credentials.username

    def get_service(platform: str) -> PlatformService:
        service = services.get(platform)
        if service is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown platform: {platform}")
        return service

    app = FastAPI(title="Sentiscope", version=__version__)
    router = APIRouter(prefix="/api", dependencies=[Depends(require_auth)])

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Internal server error"},
        )

    # -- dashboard reads ---------------------------------------------------

    @router.get("/stats")
    def get_stats(platform: Optional[str] = None):
        return analytics.stats(platform)

    @router.get("/distribution")
    def get_distribution(days: int = Query(30, ge=1, le=365), platform: Optional[str] = None):
        return analytics.distribution(days, platform)

    @router.get("/sentiment")
    def get_sentiment_trend(days: int = Query(30, ge=1, le=365), platform: Optional[str] = None):
        return analytics.trend(days, platform)

    @router.get("/recent-messages")
    def get_recent_messages(
        limit: int = Query(10, ge=1, le=500),
        platform: Optional[str] = None,
        sentiment: Optional[str] = None,
        channel_id: Optional[str] = None,
        search: Optional[str] = None,
    ):
        filters = RecentMessageFilter(platform=platform, sentiment=sentiment, channel_id=channel_id, search=search)
        return analytics.recent_messages(limit, filters)

    @router.get("/messages/{day}")
    def get_messages_on(day: str, platform: Optional[str] = None):
        try:
            parsed = date.fromisoformat(day)
        except ValueError:
            return _envelope(OperationResult(False, "Invalid date format"))
        return analytics.messages_on(parsed, platform)

    # -- webhook ingestion -------------------------------------------------

    @router.post("/webhook/discord")
    async def discord_webhook(payload: WebhookMessage):
        required = {
            "message_id": payload.message_id,
            "channel_id": payload.channel_id,
            "guild_id": payload.guild_id,
            "author_id": payload.author_id,
            "content": payload.content,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            return _envelope(OperationResult(False, f"Missing required fields: {', '.join(missing)}"))

        message = InboundMessage(
            platform=DISCORD,
            message_id=payload.message_id,
            channel_id=payload.channel_id,
            group_id=payload.guild_id,
            author_id=payload.author_id,
            author_display_name=payload.author_name or payload.author_id,
            content=payload.content,
            timestamp=payload.timestamp or datetime.now(timezone.utc),
            author_is_bot=payload.author_is_bot,
            channel_name=payload.channel_name,
        )
        outcome = await get_service(DISCORD).handle_inbound(message)
        if outcome is None:
            return _envelope(OperationResult(False, "Message could not be processed"))
        if outcome.is_stored:
            return _envelope(
                OperationResult(
                    True,
                    "Message analyzed",
                    data={"sentiment": outcome.stored.sentiment_label, "score": outcome.stored.sentiment_score},
                )
            )
        return _envelope(OperationResult(True, f"Message skipped: {outcome.reason}"))

    # -- settings and connection ------------------------------------------

    @router.get("/{platform}/settings")
    def get_settings(platform: str, group_id: Optional[str] = None):
        settings = get_service(platform).get_settings(group_id)
        return settings_to_dict(settings) if settings else None

    @router.post("/{platform}/settings")
    async def update_settings(platform: str, payload: SettingsRequest):
        update = SettingsUpdate(
            group_id=payload.group_id,
            credential=payload.token,
            is_active=payload.is_active,
            monitor_all_channels=payload.monitor_all_channels,
            analysis_frequency=payload.analysis_frequency,
            logging_enabled=payload.logging_enabled,
            notifications_enabled=payload.notifications_enabled,
        )
        return _envelope(await get_service(platform).update_settings(update))

    @router.post("/{platform}/start")
    async def start_bot(platform: str, payload: Optional[GroupRequest] = None):
        return _envelope(await get_service(platform).start(payload.group_id if payload else None))

    @router.post("/{platform}/stop")
    async def stop_bot(platform: str, payload: Optional[GroupRequest] = None):
        return _envelope(await get_service(platform).stop(payload.group_id if payload else None))

    @router.get("/{platform}/status")
    def bot_status(platform: str):
        return get_service(platform).status()

    # -- channels -----------------------------------------------------------

    @router.get("/{platform}/channels")
    def list_channels(platform: str, group_id: Optional[str] = None):
        return get_service(platform).list_channels(group_id)

    @router.post("/{platform}/channels/refresh")
    async def refresh_channels(platform: str, payload: Optional[GroupRequest] = None):
        return _envelope(await get_service(platform).refresh_channels(payload.group_id if payload else None))

    @router.post("/{platform}/channels/monitor")
    def monitor_channel(platform: str, payload: MonitorRequest):
        return _envelope(get_service(platform).set_monitored(payload.channel_id, payload.group_id, payload.monitor))

    @router.post("/{platform}/channels/{channel_id}/history")
    async def fetch_history(platform: str, channel_id: str, limit: Optional[int] = Query(None, ge=1, le=10000)):
        return _envelope(await get_service(platform).fetch_history(channel_id, limit))

    @router.get("/{platform}/channels/{channel_id}/history")
    def history_status(platform: str, channel_id: str):
        return get_service(platform).history_status(channel_id)

    # -- exclusions ---------------------------------------------------------

    @router.get("/{platform}/excluded-users")
    def list_excluded_users(platform: str, group_id: Optional[str] = None):
        return get_service(platform).list_excluded_users(group_id)

    @router.post("/{platform}/excluded-users")
    def exclude_user(platform: str, payload: ExcludeUserRequest):
        service = get_service(platform)
        return _envelope(service.exclude_user(payload.user_id, payload.group_id, payload.display_name, payload.reason))

    @router.delete("/{platform}/excluded-users/{user_id}")
    def unexclude_user(platform: str, user_id: str, group_id: Optional[str] = None):
        return _envelope(get_service(platform).unexclude_user(user_id, group_id))

    app.include_router(router)
    return app
