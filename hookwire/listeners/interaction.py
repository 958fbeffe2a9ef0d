"""Interaction listeners: multi-step flows keyed by ``callback_id``.

An interactive flow (choose a job, then an action, then fill a dialog)
is written as one InteractionListener subclass with one method per
step. Every message the flow sends carries the ``callback_id`` of the
step that should handle the user's answer, so when the answer comes back
the listener dispatches it to that method.

Dispatch goes through a table built when the subclass is created, never
through raw attribute lookup: only public methods declared on the
subclass, its own bases below InteractionListener, or mixins composed
with it are steps. A method becomes the step named after it, or after
the name passed to ``@state``, which is how Python method names map
onto camelCase callback ids.

Key classes:
    InteractionListener: Base for multi-step interactive flows.

Key functions:
    state: Decorator naming the step a method handles.
"""

import inspect
from typing import Any, Callable, Dict, FrozenSet, List

from ..exceptions import MissingCorrelationKeyError, UnimplementedError
from ..message import CORRELATION_KEY
from .base import Listener, maybe_await

STATE_NAME_ATTR = "_interaction_state"

# Members of InteractionListener itself that can never be steps
_RESERVED: FrozenSet[str] = frozenset()


def state(name: str) -> Callable:
    """Register the decorated method as the step for ``callback_id == name``."""
    if not isinstance(name, str) or not name:
        raise TypeError(f"Invalid interaction state name: {name!r}")

    def decorator(func):
        setattr(func, STATE_NAME_ATTR, name)
        return func
    return decorator


def _build_states(cls: type) -> Dict[str, str]:
    """Map step name -> method name for an InteractionListener subclass."""
    table: Dict[str, str] = {}
    base_classes = set(InteractionListener.__mro__)
    for klass in reversed(cls.__mro__):
        # Steps come from subclasses and from any mixins composed with them
        if klass in base_classes:
            continue
        for attr, value in vars(klass).items():
            if attr.startswith("_") or attr in _RESERVED:
                continue
            # A redefinition (method or data) replaces what the base declared
            for step in [s for s, a in table.items() if a == attr]:
                del table[step]
            if not inspect.isfunction(value):
                continue
            table[getattr(value, STATE_NAME_ATTR, attr)] = attr
    return table


class InteractionListener(Listener, kind=True):
    """Base for flows driven by the ``callback_id`` of interactive payloads.

    ``match`` is true when the unit's callback_id names a step of this
    class; ``process`` runs that step with the unit. ``initiate`` is the
    conventional entry step other listeners call to start the flow.
    """

    _states: Dict[str, str] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._states = _build_states(cls)

    @classmethod
    def states(cls) -> List[str]:
        """Step names this listener answers to."""
        return list(cls._states)

    def _resolve(self, key: Any):
        if not isinstance(key, str):
            return None
        attr = self._states.get(key)
        # Instance data shadowing a step disables it
        if attr is None or attr in vars(self) or key in vars(self):
            return None
        return getattr(self, attr)

    def match(self, unit: Any) -> bool:
        return self._resolve(unit.get(CORRELATION_KEY)) is not None

    async def process(self, unit: Any) -> Any:
        key = unit.get(CORRELATION_KEY)
        if not key:
            raise MissingCorrelationKeyError(CORRELATION_KEY, listener=self.class_name)

        step = self._resolve(key)
        if step is None:
            raise UnimplementedError(self.class_name, f"{key}()")

        self.log.debug("interaction_step", step=key)
        return await maybe_await(step(unit))

    def initiate(self, unit: Any, **kwargs: Any) -> Any:
        raise UnimplementedError(self.class_name, "initiate()")


_RESERVED = frozenset(dir(InteractionListener)) - {"initiate"}
