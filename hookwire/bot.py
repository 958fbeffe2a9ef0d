"""Chat bot: one registry context plus the subscribers wired into it.

A ChatBot is named by its config key. Construction creates the bot's
registry context and fills it with the bot itself, its transport and,
optionally, its database; it also makes sure the process-wide WebServer
exists. ``start`` brings the server and transport up and activates the
queued subscribers; ``stop`` tears them down again.

Key classes:
    ChatBot: Owns one context, its transport and its subscribers.
"""

from typing import Any, List, Optional

from . import __version__
from .capabilities import Configurable, Environmental, Identifiable, Loggable
from .config import Config, get_config
from .db import DbAdapter
from .exceptions import ConfigurationError, ListenerKindError
from .registry import Context, Registry, get_name, get_registry
from .subscriber import Subscriber
from .transport import SlackTransport, Transport
from .web_server import WebServer


class ChatBot(Identifiable, Loggable, Environmental, Configurable):
    """A named bot bound to its own registry context.

    Args:
        name: Config key of the bot's settings section; also its context name.
        config: Config to read settings from (default: process-wide).
        transport: Chat transport. Built from settings when omitted.
        db: Ready database instance stored in the context as ``db``.
        db_adapter: DbAdapter whose ``get_instance()`` becomes ``db`` when
            ``db`` is not given.
        registry: Registry to use (default: process-wide).

    Raises:
        ConfigurationError: If ``name`` has no settings section.
        ListenerKindError: If ``db_adapter`` is not a DbAdapter.
    """

    log_subsystem = "bot"

    def __init__(
        self,
        name: str,
        config: Optional[Config] = None,
        transport: Optional[Transport] = None,
        db: Any = None,
        db_adapter: Optional[DbAdapter] = None,
        registry: Optional[Registry] = None,
    ):
        if not name:
            raise TypeError("ChatBot requires a name (its config key)")

        self._name = name
        self._registry = registry if registry is not None else get_registry()
        self.configure(name, config)

        self._context = self._registry.context(name)
        self._context.set(self)
        self._context.set("bot", self)

        if self._registry.global_value("WebServer") is None:
            ChatBot.server_opts(registry=self._registry, config=self.app_config)

        self.transport = transport or self._build_transport()
        self._context.set("transport", self.transport)

        self._db_adapter: Optional[DbAdapter] = None
        if db is not None or db_adapter is not None:
            if db is None:
                if not isinstance(db_adapter, DbAdapter):
                    raise ListenerKindError(
                        f"{name} must be provided with valid DbAdapter instance!",
                        expected=DbAdapter.__name__,
                        actual=get_name(db_adapter),
                    )
                self._db_adapter = db_adapter
                db = db_adapter.get_instance()
            self._context.set("db", db)

        self._subscriber_queue: List[Any] = []
        self._subscribers: List[Subscriber] = []
        self._started = False

        self._wire_events()

    @classmethod
    def server_opts(
        cls,
        host: Optional[str] = None,
        port: Optional[int] = None,
        registry: Optional[Registry] = None,
        config: Optional[Config] = None,
    ) -> WebServer:
        """Create the process-wide WebServer. Only one call is allowed.

        Call it before creating any bot to pick host/port explicitly;
        otherwise the first bot creates one from settings.
        """
        registry = registry if registry is not None else get_registry()
        if registry.global_value("WebServer") is not None:
            raise ConfigurationError(
                "server_opts can only be called once, before bot instantiation!",
                setting_name="web_server",
            )
        config = config or get_config()
        server = WebServer(
            host=host or config.web_server_host,
            port=port or config.web_server_port,
        )
        registry.global_value("WebServer", server)
        return server

    @property
    def name(self) -> str:
        return self._name

    @property
    def context(self) -> Context:
        return self._context

    @property
    def version(self) -> str:
        return __version__

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def subscribers(self) -> List[Subscriber]:
        return list(self._subscribers)

    def _build_transport(self) -> Transport:
        token = Config.resolve_secret(self.config, "token")
        return SlackTransport(
            token,
            broadcast_channels=self.config.get("broadcast_channels"),
            rtm=self.config.get("rtm", True),
        )

    def _wire_events(self) -> None:
        def on_hello(data):
            self.log.debug("rtm_hello")

        def on_goodbye(data):
            self.log.debug("rtm_goodbye")

        def on_channel_joined(data):
            self.log.info("channel_joined", channel=(data.get("channel") or {}).get("name"))

        def on_user_change(data):
            self.log.debug("user_changed_profile", user=(data.get("user") or {}).get("name"))

        self.transport.on("hello", on_hello)
        self.transport.on("goodbye", on_goodbye)
        self.transport.on("channel_joined", on_channel_joined)
        self.transport.on("user_change", on_user_change)

    def add_subscriber(self, subscriber: Any) -> None:
        """Queue a Subscriber class or instance; activated on ``start``."""
        self._subscriber_queue.append(subscriber)
        if self._started:
            self._process_subscriber_queue()

    def _process_subscriber_queue(self) -> None:
        leftovers = []
        for entry in self._subscriber_queue:
            if isinstance(entry, Subscriber):
                instance = entry
                instance.registry = self._registry
            elif isinstance(entry, type) and issubclass(entry, Subscriber):
                instance = entry(registry=self._registry)
            else:
                leftovers.append(entry)
                continue
            self._context.set(instance)
            instance.activate(self._context)
            self._subscribers.append(instance)

        self._subscriber_queue = leftovers
        if leftovers:
            self.log.warning(
                "subscribers_unusable",
                count=len(leftovers),
                entries=[get_name(entry) for entry in leftovers],
            )

    async def start(self) -> None:
        server = self._registry.global_value("WebServer")
        self._started = True
        await server.start()
        await self.transport.start()
        self._process_subscriber_queue()
        self.log.info(
            "bot_started",
            bot=self._name,
            env=self.env,
            version=self.version,
            subscribers=len(self._subscribers),
        )

    async def stop(self) -> None:
        for subscriber in self._subscribers:
            await subscriber.deactivate(self._context)
        if self._db_adapter is not None:
            self._db_adapter.disconnect()
        await self.transport.stop()
        server = self._registry.global_value("WebServer")
        if server is not None:
            await server.stop()
        self._started = False
        self.log.info("bot_stopped", bot=self._name)
