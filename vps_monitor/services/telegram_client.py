import logging
from typing import Any, Dict, List, Optional

import httpx

from vps_monitor.errors import DeliveryError
from vps_monitor.formatting import action_keyboard, format_alert_message, format_digest_message
from vps_monitor.models.alerts import AlertRaised
from vps_monitor.models.snapshot import MetricSnapshot

logger = logging.getLogger(__name__)


class TelegramClient:
    """
    Minimal synchronous client for the Telegram Bot HTTP API.

    Every transport or API failure is raised as DeliveryError; callers decide
    whether to log it or report it to the user.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self._http = http_client or httpx.Client(
            base_url=f"{base_url.rstrip('/')}/bot{token}",
            timeout=timeout,
        )

    def _call(self, method: str, payload: Dict[str, Any], timeout: Optional[float] = None) -> Any:
        kwargs: Dict[str, Any] = {"json": payload}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = self._http.post(f"/{method}", **kwargs)
            body = response.json()
        except httpx.HTTPError as exc:
            raise DeliveryError(f"{method} failed: {exc}") from exc
        except ValueError as exc:
            raise DeliveryError(
                f"{method} returned non-JSON response (HTTP {response.status_code})"
            ) from exc

        if not body.get("ok"):
            raise DeliveryError(
                f"{method} rejected: {body.get('description', 'unknown error')}"
            )
        return body.get("result")

    def get_updates(self, offset: Optional[int] = None, timeout: int = 30) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "timeout": timeout,
            "allowed_updates": ["message", "callback_query"],
        }
        if offset is not None:
            payload["offset"] = offset
        # HTTP timeout must outlast the long-poll window
        return self._call("getUpdates", payload, timeout=timeout + 10) or []

    def send_message(
        self,
        chat_id: str,
        text: str,
        parse_mode: Optional[str] = "Markdown",
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Send a message and return its message_id."""
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup:
            payload["reply_markup"] = reply_markup
        result = self._call("sendMessage", payload)
        return int(result["message_id"])

    def edit_message_text(
        self,
        chat_id: str,
        message_id: int,
        text: str,
        parse_mode: Optional[str] = "Markdown",
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = {"chat_id": chat_id, "message_id": message_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup:
            payload["reply_markup"] = reply_markup
        self._call("editMessageText", payload)

    def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        self._call("answerCallbackQuery", payload)

    def close(self) -> None:
        self._http.close()


class TelegramSink:
    """Delivers alert and digest messages to the administrator chat."""

    def __init__(self, client: TelegramClient, admin_chat_id: str):
        self.client = client
        self.admin_chat_id = admin_chat_id

    def deliver_alert(self, events: List[AlertRaised], snapshot: MetricSnapshot) -> None:
        self.client.send_message(self.admin_chat_id, format_alert_message(events, snapshot))
        logger.info("Alert delivered for %s", ", ".join(e.metric.value for e in events))

    def deliver_digest(self, snapshot: MetricSnapshot) -> None:
        self.client.send_message(
            self.admin_chat_id,
            format_digest_message(snapshot),
            reply_markup=action_keyboard(),
        )
