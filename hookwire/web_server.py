"""HTTP hook server shared by every bot in the process.

Slack (slash commands, interactive callbacks, options loads) and other
systems (CI notifications) deliver work by POSTing to configured paths.
Subscribers register handlers per path with ``on``; a request runs every
handler registered for its path, one after another, and answers 200 if
all of them succeed, 500 if any raises, and 403 for anything else
(unknown paths, non-POST requests, or while hooks are ignored).

Handlers are called as ``handler(headers, data, response)`` where
``data`` is the decoded body and ``response`` a HookResponse they may
write to. ``dispatch`` runs the same pipeline without the network.

Key classes:
    WebServer: aiohttp application wrapper.
"""

import json
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from aiohttp import web

from .capabilities import Identifiable, Loggable
from .exceptions import WebServerError
from .listeners.base import maybe_await
from .message import HookResponse

HookHandler = Callable[[Dict[str, str], Dict[str, Any], HookResponse], Optional[Awaitable[Any]]]

GENERIC_ERROR_BODY = "Something went wrong while handling this request."


def decode_form(form: Mapping[str, Any]) -> Dict[str, Any]:
    """Turn a form body into a dict, merging Slack's JSON ``payload`` field."""
    data = {k: v for k, v in form.items() if isinstance(v, str)}
    payload = data.pop("payload", None)
    if payload:
        decoded = json.loads(payload)
        if isinstance(decoded, dict):
            data.update(decoded)
    return data


class WebServer(Identifiable, Loggable):
    """Dispatches POSTed hook requests to the handlers registered per path.

    Args:
        host: Interface to bind.
        port: TCP port to listen on.
    """

    log_subsystem = "server"

    def __init__(self, host: str = "0.0.0.0", port: int = 3000):
        self.host = host
        self.port = port
        self._hooks: List[Tuple[str, HookHandler]] = []
        self._ignoring = False
        self._runner: Optional[web.AppRunner] = None

    @property
    def is_ignoring_hooks(self) -> bool:
        return self._ignoring

    @property
    def is_listening(self) -> bool:
        return self._runner is not None

    def on(self, path: str, handler: HookHandler) -> bool:
        """Register ``handler`` for POSTs to ``path``.

        Paths must start with "/"; anything else is refused with a
        warning and False is returned.
        """
        if not isinstance(path, str) or not path.startswith("/"):
            self.log.warning("hook_refused", path=path, reason="Hooks must begin with a slash (/)")
            return False
        if not callable(handler):
            raise TypeError(f"Hook handler for {path} must be callable")
        self._hooks.append((path, handler))
        self.log.debug("hook_added", path=path)
        return True

    def hooks(self, path: str) -> List[HookHandler]:
        return [handler for hook_path, handler in self._hooks if hook_path == path]

    def ignore_hooks(self, should_ignore: bool = True) -> None:
        self._ignoring = bool(should_ignore)
        self.log.info("hooks_ignored" if self._ignoring else "hooks_resumed")

    async def dispatch(
        self, path: str, headers: Mapping[str, str], data: Dict[str, Any]
    ) -> HookResponse:
        """Run the handlers for ``path`` in registration order.

        Returns:
            The HookResponse to send: whatever a handler wrote, else 200;
            500 if a handler raised; 403 if nothing handles ``path``.
        """
        response = HookResponse()
        handlers = self.hooks(path)

        if self._ignoring:
            self.log.debug("ignoring_hooks", path=path)
        if self._ignoring or not handlers:
            self.log.warning("hook_forbidden", path=path)
            response.write_text("", status=403)
            return response

        headers = dict(headers)
        for handler in handlers:
            try:
                await maybe_await(handler(headers, data, response))
            except Exception as e:
                self.log.error(
                    "hook_handler_failed",
                    path=path,
                    error_type=type(e).__name__,
                    error=str(e),
                    exc_info=True,
                )
                failed = HookResponse()
                failed.write_text(GENERIC_ERROR_BODY, status=500)
                return failed

        if not response.finished:
            response.write_text("", status=200)
        return response

    async def _decode(self, request: web.Request) -> Dict[str, Any]:
        content_type = request.content_type or ""
        if "json" in content_type:
            data = await request.json()
            if not isinstance(data, dict):
                raise ValueError("JSON body must be an object")
            return data
        if "form-urlencoded" in content_type or "multipart" in content_type:
            return decode_form(await request.post())
        raise ValueError(f"Unsupported content type: {content_type or 'none'}")

    async def _handle(self, request: web.Request) -> web.Response:
        if request.method != "POST":
            self.log.warning("hook_forbidden", path=request.path, method=request.method)
            return web.Response(status=403)

        try:
            data = await self._decode(request)
        except ValueError as e:
            self.log.warning("hook_body_invalid", path=request.path, error=str(e))
            return web.Response(status=400, text="Invalid request body")

        self.log.debug("hook_request", path=request.path, keys=sorted(data))
        result = await self.dispatch(request.path, request.headers, data)
        return web.Response(
            status=result.status,
            text=result.body or "",
            content_type=result.content_type,
        )

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self._handle)
        return app

    async def start(self) -> None:
        """Start listening. A second call while listening is a no-op."""
        if self._runner is not None:
            return
        runner = web.AppRunner(self.make_app())
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            raise WebServerError(
                f"Unable to listen on {self.host}:{self.port}",
                host=self.host, port=self.port, error=str(e),
            ) from e
        self._runner = runner
        self.log.info("web_server_started", host=self.host, port=self.port)

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        self.log.info("web_server_stopped")
