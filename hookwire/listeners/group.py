"""Kind-validated collections of listeners.

A ListenerGroup owns the listeners of one kind for one bot. Processing a
unit runs every member's ``match`` concurrently, then runs ``process``
for the first matching member (or every matching member, in
registration order and one at a time, with ``match_all``).

Key classes:
    ListenerGroup: Abstract group.
    InteractionListenerGroup, OptionsListenerGroup, RtmListenerGroup,
    SlashCommandListenerGroup, NotifyListenerGroup: The concrete groups
        a Subscriber wires to its hooks.
"""

import asyncio
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Union

from ..capabilities import Identifiable, Loggable, abstract_guard, kind_of
from ..exceptions import ListenerKindError
from ..registry import Context, Registry, get_name, get_registry
from .base import (
    Listener,
    NotifyListener,
    OptionsListener,
    RtmListener,
    SlashCommandListener,
    maybe_await,
)
from .interaction import InteractionListener

# Slack renders at most this many options for an external select
MAX_OPTIONS = 100


class ListenerGroup(Identifiable, Loggable):
    """Ordered set of listeners sharing one kind.

    The group must be set into a registry context before listeners are
    added; added listeners are set into that same context.

    Args:
        member_kind: Listener kind members must have. Defaults to the
            class attribute of the concrete group.
        registry: Registry the group lives in (default: process-wide).
    """

    member_kind: type = Listener

    def __init__(self, member_kind: Optional[type] = None, registry: Optional[Registry] = None):
        abstract_guard(self, ListenerGroup)
        kind = member_kind or type(self).member_kind
        if not (isinstance(kind, type) and issubclass(kind, Listener)):
            raise ListenerKindError(
                "Group member kind must be a Listener kind!",
                expected=Listener.__name__,
                actual=get_name(kind),
            )
        self._member_kind = kind
        self._listeners: List[Any] = []
        self._registry = registry

    @property
    def kind(self) -> type:
        return self._member_kind

    @property
    def registry(self) -> Registry:
        return self._registry if self._registry is not None else get_registry()

    @property
    def context(self) -> Context:
        return self.registry.context_for(self)

    @property
    def listeners(self) -> List[Any]:
        return list(self._listeners)

    def __len__(self) -> int:
        return len(self._listeners)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._listeners))

    def _check(self, candidate: Any) -> None:
        kind = kind_of(candidate)
        ok = (
            kind is not None
            and issubclass(kind, self._member_kind)
            and callable(getattr(candidate, "match", None))
            and callable(getattr(candidate, "process", None))
        )
        if not ok:
            raise ListenerKindError(
                f"Listener must be of kind {self._member_kind.__name__}!",
                expected=self._member_kind.__name__,
                actual=get_name(kind) or get_name(candidate),
                group=self.class_name,
            )

    def add(self, listeners: Union[Any, Iterable[Any]]) -> "ListenerGroup":
        """Add one listener or a list of them (instances or classes).

        Classes are instantiated with no arguments. Every candidate is
        checked before any is added.

        Raises:
            ListenerKindError: If a candidate is not of the group's kind.
            RegistryLookupError: If the group is not in a registry context.
        """
        if isinstance(listeners, (list, tuple)):
            candidates = list(listeners)
        else:
            candidates = [listeners]

        for candidate in candidates:
            self._check(candidate)

        context = self.context
        for candidate in candidates:
            listener = candidate() if isinstance(candidate, type) else candidate
            if isinstance(listener, Listener):
                listener.registry = self.registry
            context.set(listener)
            self._listeners.append(listener)
            self.log.debug("listener_added", listener=get_name(listener), context=context.name)
        return self

    async def _match(self, listener: Any, unit: Any) -> bool:
        try:
            outcome = await maybe_await(listener.match(unit))
        except Exception as e:
            self.log.warning(
                "listener_match_failed",
                listener=get_name(listener),
                error_type=type(e).__name__,
                error=str(e),
            )
            return False
        if not isinstance(outcome, bool):
            self.log.warning(
                "listener_match_not_bool",
                listener=get_name(listener),
                result_type=type(outcome).__name__,
            )
            return False
        return outcome

    async def process(self, unit: Any, match_all: bool = False) -> Any:
        """Match concurrently, then process matching listeners in order.

        Returns:
            The result of the last listener processed, or None when no
            listener matched. Errors raised by ``process`` propagate.
        """
        if unit is None:
            raise TypeError("Cannot process a missing unit of work")

        listeners = list(self._listeners)
        if not listeners:
            return None

        matches = await asyncio.gather(*(self._match(l, unit) for l in listeners))

        result = None
        processed = 0
        for listener, matched in zip(listeners, matches):
            if not matched:
                continue
            self.log.debug("listener_processing", listener=get_name(listener))
            result = await maybe_await(listener.process(unit))
            processed += 1
            if not match_all:
                break

        if not processed:
            self.log.debug("no_listener_matched", group=self.class_name)
        return result

    def __repr__(self) -> str:
        return f"<{self.class_name} kind={self._member_kind.__name__} listeners={len(self)}>"


class InteractionListenerGroup(ListenerGroup):
    member_kind = InteractionListener


class OptionsListenerGroup(ListenerGroup):
    """Answers options-load requests.

    A list result is sent as ``{"options": [...]}`` (at most MAX_OPTIONS);
    a mapping (e.g. ``{"option_groups": [...]}``) is sent unchanged.
    """

    member_kind = OptionsListener

    async def process(self, unit: Any, match_all: bool = False) -> Any:
        options = await super().process(unit, match_all=match_all)
        if isinstance(options, Mapping):
            body = dict(options)
            result = options
        elif options is None or isinstance(options, (list, tuple)):
            result = list(options or [])
            if len(result) > MAX_OPTIONS:
                self.log.info("options_truncated", total=len(result), limit=MAX_OPTIONS)
                result = result[:MAX_OPTIONS]
            body = {"options": result}
        else:
            raise TypeError(
                f"Options listener returned {type(options).__name__}, expected a list or mapping"
            )
        response = getattr(unit, "response", None)
        if response is not None:
            response.write_json(body)
        return result


class RtmListenerGroup(ListenerGroup):
    member_kind = RtmListener


class SlashCommandListenerGroup(ListenerGroup):
    member_kind = SlashCommandListener


class NotifyListenerGroup(ListenerGroup):
    member_kind = NotifyListener
