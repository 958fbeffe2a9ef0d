"""Listener contract and the kind-specific listener bases.

A listener is a unit of behaviour with two operations: ``match(unit)``
decides whether the listener wants a unit of work, ``process(unit)``
acts on it. Either may be a plain function or a coroutine function.

Each base below declares its own kind (``kind=True``) so a
ListenerGroup can refuse listeners built for a different channel.

Key classes:
    Listener: Abstract contract.
    OptionsListener: Serves dynamic select options, matched on ``name``.
    RtmListener: Real-time messages, matched on a regex ``pattern``.
    SlashCommandListener: Slash commands, matched on a regex ``pattern``.
    NotifyListener: Non-chat hook payloads (CI notifications).
"""

import inspect
import re
from typing import Any, Optional, Pattern, Union

from ..capabilities import Environmental, Identifiable, Loggable, abstract_guard
from ..exceptions import UnimplementedError
from ..registry import Context, Registry, get_registry


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, else return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


class Listener(Identifiable, Loggable, Environmental, kind=True):
    """Abstract listener. Subclasses override ``match`` and ``process``."""

    log_subsystem = "listeners"

    def __init__(self, registry: Optional[Registry] = None):
        abstract_guard(self, Listener)
        self._registry = registry

    @property
    def registry(self) -> Registry:
        return self._registry if self._registry is not None else get_registry()

    @registry.setter
    def registry(self, registry: Registry) -> None:
        self._registry = registry

    @property
    def context(self) -> Context:
        """The registry context this listener was added to."""
        return self.registry.context_for(self)

    def match(self, unit: Any) -> bool:
        raise UnimplementedError(self.class_name, "match()")

    def process(self, unit: Any) -> Any:
        raise UnimplementedError(self.class_name, "process()")

    def __repr__(self) -> str:
        return f"<{self.class_name}>"


class _PatternListener(Listener):
    """Shared matching for listeners keyed on a regex over the unit text."""

    @property
    def pattern(self) -> Union[str, Pattern]:
        raise UnimplementedError(self.class_name, "pattern")

    def compiled_pattern(self) -> Pattern:
        pattern = self.pattern
        if isinstance(pattern, str):
            pattern = re.compile(pattern)
        return pattern

    def match(self, unit: Any) -> bool:
        return bool(self.compiled_pattern().search(unit.text))


class OptionsListener(Listener, kind=True):
    """Serves the options of an external select element.

    ``name`` must equal the ``name`` of the select element; ``process``
    returns the list of ``{"text": ..., "value": ...}`` options.
    """

    @property
    def name(self) -> str:
        raise UnimplementedError(self.class_name, "name")

    def match(self, unit: Any) -> bool:
        return unit.name == self.name


class RtmListener(_PatternListener, kind=True):
    """Handles real-time channel messages whose text matches ``pattern``."""


class SlashCommandListener(_PatternListener, kind=True):
    """Handles slash commands whose text matches ``pattern``.

    ``help`` is a short usage line listed by help commands.
    """

    help = ""


class NotifyListener(Listener, kind=True):
    """Handles payloads posted to a notification hook by another system."""

    @property
    def name(self) -> str:
        raise UnimplementedError(self.class_name, "name")

    def match(self, unit: Any) -> bool:
        return unit.get("name") == self.name
