"""Subscribers bundle the listeners of one feature and wire them to hooks.

A bot activates each of its subscribers once, at start. Activation
gives the subscriber its four canonical listener groups, connects the
bot's configured HTTP hook paths and the transport's real-time
``message`` event to those groups, and finally calls the subscriber's
own ``subscribe`` so it can add listeners and any extra hooks.

Errors raised while a listener processes a unit are contained here: the
detail is logged and the user gets a generic apology instead.

Key classes:
    Subscriber: Abstract base for feature bundles.

Constants:
    GENERIC_FAILURE_TEXT: Text sent to users when processing fails.
"""

import re
from typing import Any, Callable, Iterable, Optional, Union

from .capabilities import Environmental, Identifiable, Loggable, abstract_guard
from .exceptions import ConfigurationError, ListenerKindError, TransportError, UnimplementedError
from .listeners.group import (
    InteractionListenerGroup,
    ListenerGroup,
    OptionsListenerGroup,
    RtmListenerGroup,
    SlashCommandListenerGroup,
)
from .message import Message
from .registry import Context, Registry, get_name, get_registry

GENERIC_FAILURE_TEXT = "Sorry, something went wrong while handling that request."

CANONICAL_GROUPS = (
    InteractionListenerGroup,
    OptionsListenerGroup,
    RtmListenerGroup,
    SlashCommandListenerGroup,
)

# Bot setting -> group attribute that handles requests posted to it
HOOK_GROUPS = (
    ("slash_command_uri", "slash_command_listener_group"),
    ("interactive_uri", "interaction_listener_group"),
    ("options_load_uri", "options_listener_group"),
)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def snake_case(name: str) -> str:
    """``InteractionListenerGroup`` -> ``interaction_listener_group``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class Subscriber(Identifiable, Loggable, Environmental):
    """Abstract feature bundle. Subclasses implement ``subscribe``.

    Args:
        registry: Registry the owning bot lives in (default: process-wide).
    """

    log_subsystem = "subscribers"

    # Set by add_listener_groups
    interaction_listener_group: InteractionListenerGroup
    options_listener_group: OptionsListenerGroup
    rtm_listener_group: RtmListenerGroup
    slash_command_listener_group: SlashCommandListenerGroup

    def __init__(self, registry: Optional[Registry] = None):
        abstract_guard(self, Subscriber)
        self._registry = registry

    @property
    def registry(self) -> Registry:
        return self._registry if self._registry is not None else get_registry()

    @registry.setter
    def registry(self, registry: Registry) -> None:
        self._registry = registry

    @property
    def context(self) -> Context:
        return self.registry.context_for(self)

    def register(self, context: Context) -> None:
        """Put domain collaborators into the context. Runs before any group exists."""

    def subscribe(self, context: Context) -> None:
        raise UnimplementedError(self.class_name, "subscribe()")

    async def deactivate(self, context: Context) -> None:
        """Release resources acquired in ``register``/``subscribe``. Called on bot stop."""

    def add_listener_groups(self, groups: Union[type, Iterable[type]]) -> None:
        """Instantiate group classes, register them and expose them as attributes.

        Raises:
            ListenerKindError: If an entry is not a ListenerGroup subclass.
        """
        if isinstance(groups, type):
            groups = [groups]

        context = self.context
        for group_cls in groups:
            if not (isinstance(group_cls, type) and issubclass(group_cls, ListenerGroup)):
                raise ListenerKindError(
                    'Listener group must be of type "ListenerGroup"!',
                    expected=ListenerGroup.__name__,
                    actual=get_name(group_cls),
                )
            attr = snake_case(group_cls.__name__)
            group = group_cls(registry=self.registry)
            context.set(group)
            setattr(self, attr, group)
            self.log.debug("listener_group_added", group=group_cls.__name__, attr=attr)

    def add_hook(self, path: str, handler: Callable) -> bool:
        """Register an HTTP hook handler on the process-wide web server."""
        server = self.registry.global_value("WebServer")
        if server is None:
            raise ConfigurationError(
                "No WebServer registered; hooks cannot be added",
                setting_name="web_server",
            )
        return server.on(path, handler)

    def hook_handler(self, group_attr: str, transport: Any = None) -> Callable:
        """Build a hook handler forwarding decoded bodies to a group attribute."""
        async def handle(headers, data, response):
            group = getattr(self, group_attr)
            if not len(group):
                self.log.debug("hook_ignored_empty_group", group=group.class_name)
                return None
            message = Message(data, transport=transport, headers=headers, response=response)
            return await self.forward(group, message)
        return handle

    def activate(self, context: Context) -> None:
        """Wire this subscriber into its bot's context. Called once by the bot."""
        bot = context.get("bot")
        transport = context.get("transport")
        settings = bot.config if bot is not None else {}

        self.register(context)
        self.add_listener_groups(CANONICAL_GROUPS)

        for uri_key, group_attr in HOOK_GROUPS:
            uri = settings.get(uri_key)
            if uri:
                self.add_hook(uri, self.hook_handler(group_attr, transport))
                self.log.info("hook_wired", uri=uri, group=group_attr)

        if transport is not None:
            async def on_message(data):
                if not len(self.rtm_listener_group):
                    return None
                message = Message(data, transport=transport)
                return await self.forward(self.rtm_listener_group, message)

            transport.on("message", on_message)

        self.subscribe(context)
        self.log.info("subscriber_activated", context=context.name)

    async def forward(self, group: ListenerGroup, message: Message, match_all: bool = False) -> Any:
        """Process ``message`` with ``group``, apologising to the user on failure."""
        try:
            return await group.process(message, match_all=match_all)
        except Exception as e:
            self.log.error(
                "listener_process_failed",
                group=group.class_name,
                callback_id=message.callback_id,
                error_type=type(e).__name__,
                error=str(e),
                exc_info=True,
            )
            await self.apologize(message)
            return None

    async def apologize(self, message: Message) -> None:
        try:
            if message.response_url:
                await message.respond(
                    text=GENERIC_FAILURE_TEXT,
                    response_type="ephemeral",
                    replace_original=False,
                )
            elif message.channel_id and message.transport is not None:
                await message.reply(GENERIC_FAILURE_TEXT)
        except TransportError as e:
            self.log.warning("apology_failed", error=str(e))
