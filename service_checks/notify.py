from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from service_checks.alerts import AlertEvent
from service_checks.config import NotificationConfig
from service_checks.errors import NotificationDeliveryError


LOGGER = logging.getLogger("service-monitoring.notify")

TELEGRAM_MAX_MESSAGE_LEN = 3900


class NotificationSink(Protocol):
    def send(self, text: str) -> bool: ...


def split_message(text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> list[str]:
    s = (text or "").strip()
    if not s:
        return [""]

    max_len = max(1, int(max_len))
    parts: list[str] = []
    while s:
        if len(s) <= max_len:
            parts.append(s)
            break
        cut = s.rfind("\n", 0, max_len + 1)
        if cut < max_len * 0.6:
            cut = max_len
        chunk = s[:cut].rstrip()
        parts.append(chunk)
        s = s[cut:].lstrip()
    return parts


def _redact(text: str, secret: str | None) -> str:
    if secret:
        return text.replace(secret, "<redacted>")
    return text


class WebhookSink:
    """
    Posts `{payload_key: text}` as JSON to a chat webhook.

    Works with Slack/Mattermost/Teams-style incoming webhooks (`text`) and
    Discord (`content`). One attempt; failures are logged and dropped.
    """

    def __init__(
        self,
        url: str,
        *,
        payload_key: str = "text",
        timeout_seconds: float = 15.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.payload_key = payload_key or "text"
        self.timeout_seconds = float(timeout_seconds)
        self._client = client

    def _post(self, text: str) -> None:
        payload = {self.payload_key: text}
        try:
            if self._client is not None:
                resp = self._client.post(self.url, json=payload, timeout=self.timeout_seconds)
            else:
                with httpx.Client() as client:
                    resp = client.post(self.url, json=payload, timeout=self.timeout_seconds)
        except httpx.HTTPError as exc:
            msg = _redact(f"{type(exc).__name__}: {exc}", self.url)
            raise NotificationDeliveryError(msg) from exc
        if not resp.is_success:
            raise NotificationDeliveryError(f"webhook returned http_{resp.status_code}")

    def send(self, text: str) -> bool:
        try:
            self._post(text)
        except NotificationDeliveryError as exc:
            LOGGER.warning("Notification delivery failed error=%s", exc)
            return False
        return True


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str
    chat_id: str


class TelegramSink:
    def __init__(
        self,
        config: TelegramConfig,
        *,
        timeout_seconds: float = 15.0,
        client: httpx.Client | None = None,
        api_base_url: str = "https://api.telegram.org",
    ) -> None:
        self.config = config
        self.timeout_seconds = float(timeout_seconds)
        self.api_base_url = api_base_url.rstrip("/")
        self._client = client

    def _send_part(self, client: httpx.Client, text: str) -> dict:
        url = f"{self.api_base_url}/bot{self.config.bot_token}/sendMessage"
        payload = {"chat_id": self.config.chat_id, "text": text}
        try:
            resp = client.post(url, json=payload, timeout=self.timeout_seconds)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = _redact(f"{type(exc).__name__}: {exc}", self.config.bot_token)
            raise NotificationDeliveryError(msg) from exc
        if not isinstance(data, dict) or not data.get("ok"):
            raise NotificationDeliveryError(f"telegram rejected message: {redact_telegram_response(data)}")
        return data

    def send(self, text: str) -> bool:
        parts = split_message(text)
        try:
            if self._client is not None:
                for part in parts:
                    self._send_part(self._client, part)
            else:
                with httpx.Client() as client:
                    for part in parts:
                        self._send_part(client, part)
        except NotificationDeliveryError as exc:
            LOGGER.warning("Notification delivery failed error=%s", exc)
            return False
        return True


def redact_telegram_response(data: object) -> str:
    if not isinstance(data, dict):
        return json.dumps({"ok": False})
    safe = {"ok": data.get("ok")}
    if isinstance(data.get("result"), dict):
        safe["result"] = {"message_id": data["result"].get("message_id")}
    if data.get("description"):
        safe["description"] = data.get("description")
    return json.dumps(safe, ensure_ascii=False)


class LogOnlySink:
    """Used when no notification endpoint is configured."""

    def send(self, text: str) -> bool:
        LOGGER.info("Notification (no endpoint configured) text=%r", text)
        return False


class HostNotifier:
    """Renders AlertEvents with the host marker and hands them to a sink."""

    def __init__(self, sink: NotificationSink, *, hostname: str | None = None) -> None:
        self.sink = sink
        self.hostname = hostname

    def notify(self, event: AlertEvent) -> bool:
        text = event.render(self.hostname)
        log = LOGGER.warning if event.severity.value in ("warning", "critical") else LOGGER.info
        log("Alert severity=%s text=%r", event.severity.value, text)
        try:
            return bool(self.sink.send(text))
        except Exception:
            LOGGER.exception("Notification sink raised; alert dropped severity=%s", event.severity.value)
            return False


def build_sink(config: NotificationConfig) -> NotificationSink:
    if config.kind == "telegram":
        if config.telegram_bot_token and config.telegram_chat_id:
            return TelegramSink(
                TelegramConfig(bot_token=config.telegram_bot_token, chat_id=config.telegram_chat_id),
                timeout_seconds=config.timeout_seconds,
            )
        LOGGER.warning("Missing TELEGRAM_BOT_TOKEN and/or TELEGRAM_CHAT_ID; notifications are log-only")
        return LogOnlySink()

    if config.kind == "webhook":
        if config.webhook_url:
            return WebhookSink(
                config.webhook_url,
                payload_key=config.payload_key,
                timeout_seconds=config.timeout_seconds,
            )
        LOGGER.warning("Missing notifications.webhook_url; notifications are log-only")
        return LogOnlySink()

    return LogOnlySink()
