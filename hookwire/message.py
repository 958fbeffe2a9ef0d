"""Units of work flowing through the listener pipeline.

A Message wraps one decoded inbound payload (a slash command, an
interactive callback, an options request or a real-time message) and
gives listeners a uniform way to read it and to answer it. Inbound
payloads arrive in several shapes; user, channel and team references are
normalised into ``{"id": ..., "name": ...}`` dicts on construction.

Key classes:
    HookResponse: Response sink handed to HTTP hook handlers.
    Message: The unit of work passed to match()/process().
"""

import json
from typing import Any, Dict, List, Mapping, Optional

import structlog

from .exceptions import TransportError

logger = structlog.get_logger("hookwire.listeners")

# Interactive payloads carry the correlation key under this name
CORRELATION_KEY = "callback_id"


class HookResponse:
    """Collects what an HTTP hook wants written back to the caller.

    The web server turns it into the actual HTTP response once all hook
    handlers for the request have finished.
    """

    def __init__(self):
        self.status = 200
        self.body: Optional[str] = None
        self.content_type = "text/plain"
        self.finished = False

    def write_json(self, payload: Any, status: int = 200) -> None:
        if self.finished:
            logger.debug("hook_response_already_written")
            return
        self.status = status
        self.body = json.dumps(payload)
        self.content_type = "application/json"
        self.finished = True

    def write_text(self, text: str, status: int = 200) -> None:
        if self.finished:
            logger.debug("hook_response_already_written")
            return
        self.status = status
        self.body = text
        self.content_type = "text/plain"
        self.finished = True


def _normalize(payload: Dict[str, Any], field: str, id_key: str, name_keys) -> None:
    """Fold ``<field>_id``/``<field>_name`` style keys into one dict."""
    value = payload.get(field)
    ref: Dict[str, Any] = {}
    if value is None:
        if id_key in payload:
            ref["id"] = payload.pop(id_key)
        for name_key, target in name_keys:
            if name_key in payload:
                ref[target] = payload.pop(name_key)
                break
    elif isinstance(value, str):
        ref["id"] = value
    if ref.get("id"):
        payload[field] = ref


class Message:
    """An inbound unit of work plus the means to answer it.

    Args:
        payload: Decoded JSON object (or a JSON string).
        transport: Chat transport used for outbound calls.
        headers: HTTP headers of the originating request, if any.
        response: Response sink of the originating request, if any.
    """

    def __init__(
        self,
        payload: Any,
        transport=None,
        headers: Optional[Mapping[str, str]] = None,
        response: Optional[HookResponse] = None,
    ):
        if isinstance(payload, (str, bytes)):
            payload = json.loads(payload)
        if not isinstance(payload, dict):
            raise TypeError("Message must be provided with a JSON string or dict!")

        self._json: Dict[str, Any] = dict(payload)
        self.transport = transport
        self.headers: Dict[str, str] = dict(headers or {})
        self.response = response

        _normalize(self._json, "channel", "channel_id", (("channel_name", "name"),))
        _normalize(self._json, "team", "team_id", (("team_domain", "domain"),))
        _normalize(
            self._json, "user", "user_id",
            (("user_name", "name"), ("username", "name")),
        )

    @property
    def json(self) -> Dict[str, Any]:
        return self._json

    def get(self, key: str, default: Any = None) -> Any:
        return self._json.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self._json[key]

    def __contains__(self, key: object) -> bool:
        return key in self._json

    @property
    def text(self) -> str:
        return self._json.get("text") or ""

    @property
    def callback_id(self) -> Optional[str]:
        return self._json.get(CORRELATION_KEY)

    @property
    def name(self) -> Optional[str]:
        return self._json.get("name")

    @property
    def user_id(self) -> Optional[str]:
        user = self._json.get("user")
        return user.get("id") if isinstance(user, dict) else user

    @property
    def channel_id(self) -> Optional[str]:
        channel = self._json.get("channel")
        return channel.get("id") if isinstance(channel, dict) else channel

    @property
    def response_url(self) -> Optional[str]:
        return self._json.get("response_url")

    @property
    def message_ts(self) -> Optional[str]:
        return self._json.get("message_ts") or self._json.get("ts")

    def _require_transport(self, action: str):
        if self.transport is None:
            raise TransportError(f"Message has no transport to {action} with")
        return self.transport

    async def respond(
        self,
        text: Optional[str] = None,
        attachments: Optional[List[dict]] = None,
        response_type: Optional[str] = None,
        replace_original: Optional[bool] = None,
        delete_original: Optional[bool] = None,
        thread_ts: Optional[str] = None,
    ) -> Optional[dict]:
        """Answer through the payload's ``response_url``.

        Returns None (and logs) when the payload has no response_url.
        """
        url = self.response_url
        if not url:
            logger.error("message_missing_response_url", callback_id=self.callback_id)
            return None

        body = {
            "text": text,
            "attachments": attachments if attachments is not None else [],
            "response_type": response_type,
            "replace_original": replace_original,
            "delete_original": delete_original,
            "thread_ts": thread_ts,
        }
        body = {k: v for k, v in body.items() if v is not None}
        logger.debug("message_respond", url=url, keys=sorted(body))
        return await self._require_transport("respond").send_response(url, body)

    async def reply(self, text: str, attachments: Optional[List[dict]] = None) -> Optional[dict]:
        """Post a regular message to the channel this message came from."""
        return await self._require_transport("reply").post_message(
            channel=self.channel_id, text=text, attachments=attachments or [],
        )

    async def whisper(self, text: str = "", attachments: Optional[List[dict]] = None) -> Optional[dict]:
        """Post an ephemeral message visible only to the sender."""
        return await self._require_transport("whisper").post_ephemeral(
            channel=self.channel_id, user=self.user_id,
            text=text, attachments=attachments or [],
        )

    async def dm(self, text: str) -> Optional[dict]:
        """Send the sender a direct message."""
        return await self._require_transport("dm").direct_message(user=self.user_id, text=text)

    async def delete(self) -> Optional[dict]:
        """Delete the message this interaction was attached to.

        Ephemeral messages cannot be deleted through the API, so on
        failure the deletion is requested through the response_url.
        """
        transport = self._require_transport("delete")
        try:
            return await transport.delete_message(channel=self.channel_id, ts=self.message_ts)
        except TransportError as e:
            logger.warning("message_delete_failed", error=str(e), fallback="response_url")
            return await self.respond(text="", replace_original=True, delete_original=True)

    def __repr__(self) -> str:
        return f"Message(callback_id={self.callback_id!r}, keys={sorted(self._json)})"
