"""Context-partitioned service registry for hookwire.

Several bots can share one process, and each needs its own transport
client, database handle and listeners without being able to reach into
another bot's. The registry keeps one named Context per bot; anything
set into a context is stamped with the context name so that, given only
the value (a listener, a group, a subscriber), its context can be found
again with ``Registry.context_for``.

A distinguished ``Globals`` context holds process-wide singletons such
as the HTTP hook server.

Key classes:
    Context: A named partition of entries.
    Registry: The process-wide store of contexts.

Key functions:
    get_name: Infer the registry name of a value.
    get_registry: Singleton accessor for the process-wide Registry.
"""

import threading
from typing import Any, Dict, Iterator, List, Optional, Tuple

import structlog

from .exceptions import RegistryLookupError

logger = structlog.get_logger("hookwire.registry")

GLOBALS_CONTEXT = "Globals"

# Instance attribute holding the owning context's name
CONTEXT_ATTR = "_registry_context"


def get_name(value: Any) -> Optional[str]:
    """Infer the registry name of a value.

    Prefers an explicit ``class_name`` attribute, then the class name of
    an instance (or ``__name__`` of a class). Returns None for None.
    """
    if value is None:
        return None
    class_name = getattr(value, "class_name", None)
    if isinstance(class_name, str) and class_name:
        return class_name
    if isinstance(value, type):
        return value.__name__
    return type(value).__name__


class Context:
    """A named partition of the registry.

    Entries keep insertion order. Contexts are only created through
    ``Registry.context`` so there is exactly one per name.
    """

    def __init__(self, name: str, registry: "Registry"):
        self._name = name
        self._registry = registry
        self._entries: Dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def registry(self) -> "Registry":
        return self._registry

    def set(self, key: Any, value: Any = None) -> "Context":
        """Store an entry and stamp the value with this context's name.

        ``set("db", conn)`` stores under an explicit name; ``set(listener)``
        infers the name from the value.

        Returns:
            This context, so calls can be chained.
        """
        if isinstance(key, str):
            name = key
            if value is None:
                raise TypeError(f"Context.set('{key}') requires a value")
        else:
            if value is None:
                value = key
            name = get_name(value)
            if not name:
                raise RegistryLookupError(
                    "Unable to determine entry name from given value!",
                    context_name=self._name,
                )

        self._registry._stamp(value, self._name)
        if name in self._entries and self._entries[name] is not value:
            logger.debug("registry_entry_replaced", context=self._name, entry=name)
        self._entries[name] = value
        logger.debug("registry_entry_set", context=self._name, entry=name)
        return self

    def get(self, name: str, default: Any = None) -> Any:
        return self._entries.get(name, default)

    def global_value(self, name: Any = None, value: Any = None) -> Any:
        """Shortcut for ``Registry.global_value`` on the owning registry."""
        return self._registry.global_value(name, value)

    def names(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[Tuple[str, Any]]:
        return iter(list(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Context({self._name!r}, entries={len(self._entries)})"


class Registry:
    """Process-wide store of named contexts plus the global namespace.

    Created once at process start (see ``get_registry``) and torn down
    with ``clear()`` at process stop. Context creation happens under a
    lock, so concurrent requests for the same name always get the same
    instance.
    """

    def __init__(self):
        self._contexts: Dict[str, Context] = {}
        # id(value) -> (value, context name) for values without a __dict__
        self._stamps: Dict[int, Tuple[Any, str]] = {}
        self._lock = threading.Lock()

    def context(self, name: str) -> Context:
        """Return the context for ``name``, creating it on first use."""
        if not name:
            raise TypeError(f"Given name ({name!r}) is invalid!")

        with self._lock:
            ctx = self._contexts.get(name)
            if ctx is None:
                ctx = Context(name, self)
                self._contexts[name] = ctx
                logger.debug("registry_context_created", context=name)
        return ctx

    def context_for(self, value: Any) -> Context:
        """Resolve the context that owns ``value``.

        Raises:
            RegistryLookupError: If ``value`` was never set into a context,
                or its context no longer exists.
        """
        if value is None:
            raise RegistryLookupError("Given value is invalid!")

        context_name = self._stamp_of(value)
        if not context_name:
            raise RegistryLookupError(
                "No context name exists for given value!",
                value=get_name(value),
            )

        ctx = self._contexts.get(context_name)
        if ctx is None:
            raise RegistryLookupError(
                f"Associated context name ({context_name}) does not exist in registry!",
                value=get_name(value),
            )
        return ctx

    @property
    def globals(self) -> Context:
        return self.context(GLOBALS_CONTEXT)

    def global_value(self, name: Any = None, value: Any = None) -> Any:
        """Get or set a process-wide singleton.

        ``global_value("WebServer")`` gets, ``global_value("Name", obj)``
        sets explicitly and ``global_value(obj)`` sets under the name
        inferred from ``obj``. Setting returns the value.
        """
        if value is None:
            if isinstance(name, str):
                return self.globals.get(name)
            global_name = get_name(name)
            if not global_name:
                raise RegistryLookupError("Unable to determine global name from given value!")
            return self.global_value(global_name, name)

        if not isinstance(name, str) or not name:
            raise TypeError(f"Global name must be a non-empty string, got {name!r}")
        self.globals.set(name, value)
        logger.debug("registry_global_set", name=name)
        return value

    def names(self) -> List[str]:
        return list(self._contexts)

    def __contains__(self, name: object) -> bool:
        return name in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)

    def __bool__(self) -> bool:
        # An empty registry is still a registry
        return True

    def clear(self) -> None:
        """Drop every context and back-reference."""
        with self._lock:
            self._contexts.clear()
            self._stamps.clear()
        logger.debug("registry_cleared")

    def describe(self) -> str:
        """Render the context tree, one entry per line."""
        lines = []
        for name, ctx in list(self._contexts.items()):
            lines.append(f"{name}:")
            lines.extend(f"  {entry}" for entry in ctx.names())
        return "\n".join(lines)

    def _stamp(self, value: Any, context_name: str) -> None:
        try:
            setattr(value, CONTEXT_ATTR, context_name)
            # Only trust stamps that landed on the value's own namespace
            if vars(value).get(CONTEXT_ATTR) == context_name:
                return
        except (AttributeError, TypeError, ValueError):
            pass
        self._stamps[id(value)] = (value, context_name)

    def _stamp_of(self, value: Any) -> Optional[str]:
        try:
            stamped = vars(value).get(CONTEXT_ATTR)
        except TypeError:
            stamped = None
        if stamped:
            return stamped
        entry = self._stamps.get(id(value))
        if entry is not None and entry[0] is value:
            return entry[1]
        return None


# Global registry instance
_registry: Optional[Registry] = None


def get_registry() -> Registry:
    """Get or create the process-wide registry."""
    global _registry
    if _registry is None:
        _registry = Registry()
    return _registry
