"""Background notification receiver: raw push and messaging callback share one display path."""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Optional, Protocol

from orderflow.errors import NotificationDecodeError
from orderflow.log import get_logger

logger = get_logger("receiver")

DEFAULT_TITLE = "New Notification"
DEFAULT_ICON = "/favicon.ico"
DEFAULT_TAG = "notification"
CONFIG_MESSAGE = "FIREBASE_CONFIG"


@dataclass(frozen=True)
class NotificationRecord:
    title: str
    body: str
    tag: str
    icon: str = DEFAULT_ICON
    badge: str = DEFAULT_ICON
    data: dict = field(default_factory=dict)
    require_interaction: bool = False
    silent: bool = False

    @property
    def url(self) -> Optional[str]:
        return self.data.get("url") or None


class NotificationSurface(Protocol):
    async def show(self, record: NotificationRecord) -> None: ...

    async def close(self, record: NotificationRecord) -> None: ...


class WindowClients(Protocol):
    async def match_all(self) -> list: ...

    async def focus(self, window) -> None: ...

    async def open_window(self, url: str) -> None: ...


def _mapping(value, name: str) -> Mapping:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise NotificationDecodeError(f"'{name}' must be an object, got {type(value).__name__}")
    return value


def normalize_payload(payload) -> NotificationRecord:
    if not isinstance(payload, Mapping):
        raise NotificationDecodeError(f"push payload must be an object, got {type(payload).__name__}")

    notification = _mapping(payload.get("notification"), "notification")
    data = _mapping(payload.get("data"), "data")

    if notification.get("title") or notification.get("body"):
        source = notification
    elif data.get("title") or data.get("body"):
        source = data
    else:
        raise NotificationDecodeError("push payload has no title or body")

    return NotificationRecord(
        title=str(source.get("title") or DEFAULT_TITLE),
        body=str(source.get("body") or ""),
        tag=str(data.get("order_id") or data.get("tag") or DEFAULT_TAG),
        icon=str(source.get("icon") or DEFAULT_ICON),
        data=dict(data),
    )


def decode_push(raw) -> dict:
    if raw is None or raw == b"" or raw == "":
        raise NotificationDecodeError("push event has no data")
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise NotificationDecodeError(f"push data is not JSON: {exc}") from exc


class NotificationReceiver:
    def __init__(self, surface: NotificationSurface, windows: WindowClients):
        self.surface = surface
        self.windows = windows
        self.messaging_config: Optional[dict] = None

    @property
    def initialized(self) -> bool:
        return self.messaging_config is not None

    def handle_client_message(self, message) -> bool:
        """Accept the messaging configuration posted by the foreground app."""
        if not isinstance(message, Mapping) or message.get("type") != CONFIG_MESSAGE:
            return False
        config = message.get("config")
        if not config:
            logger.warning("config_message_empty")
            return False
        if not self.initialized:
            self.messaging_config = dict(config)
            logger.info("messaging_initialized", project_id=self.messaging_config.get("projectId"))
        return True

    async def handle_push(self, raw) -> Optional[NotificationRecord]:
        try:
            payload = decode_push(raw)
        except NotificationDecodeError as exc:
            logger.warning("notification_dropped", source="push", error=str(exc))
            return None
        return await self._show(payload, source="push")

    async def handle_background_message(self, payload) -> Optional[NotificationRecord]:
        if not self.initialized:
            # the raw push path still covers this delivery
            logger.debug("background_message_before_init")
            return None
        return await self._show(payload, source="messaging")

    async def _show(self, payload, source: str) -> Optional[NotificationRecord]:
        try:
            record = normalize_payload(payload)
        except NotificationDecodeError as exc:
            logger.warning("notification_dropped", source=source, error=str(exc))
            return None

        await self.surface.show(record)
        logger.info("notification_shown", source=source, tag=record.tag)
        return record

    async def handle_click(self, record: NotificationRecord) -> Optional[str]:
        """
        Route the vendor back into a live app context.

        Returns the URL that was opened, or ``None`` when an existing window
        was focused instead.
        """
        await self.surface.close(record)

        if record.url:
            await self.windows.open_window(record.url)
            return record.url

        windows = await self.windows.match_all()
        if windows:
            await self.windows.focus(windows[0])
            return None

        await self.windows.open_window("/")
        return "/"
