"""Chat transport: Slack Web API calls plus the RTM event stream.

The transport is the bot's only path to the chat platform. Outbound calls
go through the Web API over one shared aiohttp session; inbound
real-time events arrive over an RTM websocket and are re-emitted to
handlers registered with ``on(event, handler)`` (``message``,
``hello``, ``goodbye``, ``channel_joined``, ``user_change``...).

Key classes:
    Transport: Abstract interface listeners and subscribers rely on.
    SlackTransport: aiohttp implementation against slack.com.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from .capabilities import Identifiable, Loggable
from .exceptions import TransportError
from .listeners.base import maybe_await

SLACK_API_URL = "https://slack.com/api"
MAX_RECONNECT_DELAY = 300


class Transport(Identifiable, Loggable, ABC):
    """Event emitter plus the outbound chat operations.

    Handler errors raised while emitting are logged and do not stop the
    remaining handlers or the event stream.
    """

    log_subsystem = "transport"

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event: str, handler: Callable) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Callable) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: str, data: Any = None) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                await maybe_await(handler(data))
            except Exception as e:
                self.log.error(
                    "transport_handler_failed",
                    transport_event=event,
                    error_type=type(e).__name__,
                    error=str(e),
                    exc_info=True,
                )

    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    async def post_message(self, channel: str, text: str = "", attachments=None, **extra) -> dict: ...

    @abstractmethod
    async def update_message(self, channel: str, ts: str, text: str = "", attachments=None) -> dict: ...

    @abstractmethod
    async def delete_message(self, channel: str, ts: str) -> dict: ...

    @abstractmethod
    async def post_ephemeral(self, channel: str, user: str, text: str = "", attachments=None) -> dict: ...

    @abstractmethod
    async def open_direct_message(self, user: str) -> dict: ...

    @abstractmethod
    async def open_dialog(self, trigger_id: str, dialog: dict) -> dict: ...

    @abstractmethod
    async def send_response(self, url: str, body: dict) -> Optional[dict]: ...

    async def direct_message(self, user: str, text: str, attachments=None) -> dict:
        """Open (or reuse) the DM channel with ``user`` and post to it."""
        channel = await self.open_direct_message(user)
        return await self.post_message(channel=channel["id"], text=text, attachments=attachments)


class SlackTransport(Transport):
    """Slack Web API + RTM client on aiohttp.

    Args:
        token: Bot token (xoxb-...).
        broadcast_channels: Channel ids or names ``broadcast`` posts to.
        api_url: Web API base URL.
        rtm: Whether ``start`` opens the RTM websocket.
    """

    def __init__(
        self,
        token: str,
        broadcast_channels: Optional[List[str]] = None,
        api_url: str = SLACK_API_URL,
        rtm: bool = True,
    ):
        super().__init__()
        if not token:
            raise TransportError("Unable to acquire Slack token from config!")
        self._token = token
        self.api_url = api_url.rstrip("/")
        self.rtm = rtm
        self.broadcast_names = list(broadcast_channels or [])
        self.broadcast_channels: List[dict] = []
        self.session: Optional[aiohttp.ClientSession] = None
        self.running = False
        self._rtm_task: Optional[asyncio.Task] = None

    async def api_call(self, method: str, **payload: Any) -> dict:
        """POST a Web API method and return the decoded response.

        Raises:
            TransportError: On network failure or an ``ok: false`` reply.
        """
        if self.session is None:
            self.session = aiohttp.ClientSession()
        body = {k: v for k, v in payload.items() if v is not None}
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            async with self.session.post(
                f"{self.api_url}/{method}",
                json=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=30),
            ) as resp:
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"{method} request failed: {e}", method=method) from e

        if not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error") if isinstance(data, dict) else "invalid_response"
            self.log.warning("slack_api_error", method=method, error=error)
            raise TransportError(f"{method} failed: {error}", method=method, error=error)
        return data

    async def post_message(self, channel, text="", attachments=None, **extra):
        self.log.debug("post_message", channel=channel)
        return await self.api_call(
            "chat.postMessage",
            channel=channel, text=text, attachments=attachments or [],
            as_user=True, link_names=True, **extra,
        )

    async def update_message(self, channel, ts, text="", attachments=None):
        self.log.debug("update_message", channel=channel, ts=ts)
        return await self.api_call(
            "chat.update", channel=channel, ts=ts, text=text,
            attachments=attachments or [], as_user=True,
        )

    async def delete_message(self, channel, ts):
        self.log.debug("delete_message", channel=channel, ts=ts)
        return await self.api_call("chat.delete", channel=channel, ts=ts, as_user=True)

    async def post_ephemeral(self, channel, user, text="", attachments=None):
        self.log.debug("post_ephemeral", channel=channel, user=user)
        return await self.api_call(
            "chat.postEphemeral", channel=channel, user=user, text=text,
            attachments=attachments or [], as_user=True,
        )

    async def open_direct_message(self, user):
        data = await self.api_call("conversations.open", users=user)
        return data["channel"]

    async def open_dialog(self, trigger_id, dialog):
        self.log.debug("open_dialog", trigger_id=trigger_id)
        return await self.api_call("dialog.open", trigger_id=trigger_id, dialog=json.dumps(dialog))

    async def send_response(self, url, body):
        """POST a message body to an interaction ``response_url``."""
        if self.session is None:
            self.session = aiohttp.ClientSession()
        try:
            async with self.session.post(
                url, json=body, timeout=aiohttp.ClientTimeout(total=30)
            ) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise TransportError(
                        f"response_url returned {resp.status}",
                        method="response_url", status=resp.status, body=text[:200],
                    )
                return {"ok": True}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"response_url request failed: {e}", method="response_url") from e

    async def conversations(self, types: str = "public_channel,private_channel") -> List[dict]:
        data = await self.api_call(
            "conversations.list", types=types, exclude_archived=True, limit=1000,
        )
        return data.get("channels", [])

    async def collect_broadcast_channels(self) -> List[dict]:
        """Resolve configured broadcast channel ids/names the bot belongs to."""
        self.broadcast_channels = []
        if not self.broadcast_names:
            return []
        for channel in await self.conversations():
            if channel.get("id") in self.broadcast_names or channel.get("name") in self.broadcast_names:
                self.broadcast_channels.append(channel)
        self.log.info(
            "broadcast_channels_registered",
            found=len(self.broadcast_channels),
            configured=len(self.broadcast_names),
        )
        return self.broadcast_channels

    async def broadcast(self, text: str, attachments=None) -> List[dict]:
        if not self.broadcast_names:
            raise TransportError("No broadcast channels specified in config!", method="broadcast")
        if not self.broadcast_channels:
            raise TransportError(
                "Unable to find any channels matching broadcast channels in config!",
                method="broadcast",
            )
        return await asyncio.gather(*(
            self.post_message(channel=channel["id"], text=text, attachments=attachments)
            for channel in self.broadcast_channels
        ))

    async def start(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession()
        self.running = True
        try:
            await self.collect_broadcast_channels()
        except TransportError as e:
            self.log.warning("broadcast_channels_unavailable", error=str(e))
        if self.rtm:
            self._rtm_task = asyncio.create_task(self.poll_events())
        self.log.info("transport_started", rtm=self.rtm)

    async def stop(self) -> None:
        self.running = False
        if self._rtm_task is not None:
            self._rtm_task.cancel()
            try:
                await self._rtm_task
            except asyncio.CancelledError:
                pass
            self._rtm_task = None
        if self.session is not None:
            await self.session.close()
            self.session = None
        self.log.info("transport_stopped")

    async def poll_events(self) -> None:
        """Hold the RTM websocket open, reconnecting with backoff."""
        reconnect_delay = 5

        while self.running:
            try:
                connect = await self.api_call("rtm.connect")
                ws_url = connect["url"]
                self.log.info("websocket_connecting")
                async with self.session.ws_connect(ws_url, heartbeat=30) as ws:
                    self.log.info("websocket_connected")
                    reconnect_delay = 5
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            try:
                                data = json.loads(msg.data)
                            except json.JSONDecodeError:
                                self.log.warning("invalid_json", data=msg.data[:100])
                                continue
                            await self._handle_event(data)
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            self.log.error("websocket_error", error=str(ws.exception()))
                            break
                        elif msg.type == aiohttp.WSMsgType.CLOSED:
                            self.log.info("websocket_closed")
                            break

            except asyncio.CancelledError:
                break
            except Exception as e:
                self.log.error("websocket_exception", error=str(e))
                await asyncio.sleep(reconnect_delay)
                reconnect_delay = min(reconnect_delay * 2, MAX_RECONNECT_DELAY)

    async def _handle_event(self, data: dict) -> None:
        event_type = data.get("type")
        if not event_type:
            return
        # Skip edits/joins and the bot's own echoes
        if event_type == "message" and (data.get("subtype") or data.get("bot_id")):
            return
        await self.emit(event_type, data)
