"""Composable capabilities shared by hookwire components.

Listeners, groups, subscribers and collaborators are assembled from
small independent capabilities instead of one deep base class:

    Identifiable: class name + nominal "kind" tag used for membership
        checks when handlers are composed from several bases.
    Loggable: structlog logger bound with the component name.
    Environmental: the runtime environment (development/production...).
    Configurable: one named section of settings.yaml.

Key functions:
    abstract_guard: Fail fast when an abstract base is instantiated.
    set_env / current_env: Process-wide environment override.
"""

from typing import Any, Dict, Optional

import structlog

from .config import Config, get_config
from .exceptions import AbstractInstantiationError

logger = structlog.get_logger("hookwire.bot")

_env_override: Optional[str] = None


def set_env(env: str) -> str:
    """Override the environment for every Environmental component."""
    global _env_override
    if not isinstance(env, str) or not env.strip():
        raise TypeError("Must provide valid environment string!")
    _env_override = env
    logger.info("environment_set", env=env)
    return env


def current_env() -> str:
    """The override set with ``set_env``, else ``Config.env``."""
    return _env_override or get_config().env


def abstract_guard(instance: Any, base: type) -> None:
    """Raise if ``instance`` is a direct instance of the abstract ``base``."""
    if type(instance) is base:
        raise AbstractInstantiationError(base.__name__)


class Identifiable:
    """Identity information for registry naming and kind validation.

    A class declares a new kind with ``class Foo(Listener, kind=True)``.
    Subclasses inherit the nearest declared kind, so a concrete handler's
    kind is the kind-defining base it was built on, independent of any
    other capabilities mixed into it.
    """

    _kind: Optional[type] = None

    def __init_subclass__(cls, kind: bool = False, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if kind:
            cls._kind = cls

    @property
    def class_name(self) -> str:
        return type(self).__name__

    @property
    def kind(self) -> Optional[type]:
        return type(self)._kind

    @classmethod
    def is_kind_of(cls, other: type) -> bool:
        """Whether this class's kind equals or derives from ``other``."""
        own = cls._kind
        return own is not None and (own is other or issubclass(own, other))


def kind_of(candidate: Any) -> Optional[type]:
    """Return the declared kind of a class or instance, or None."""
    cls = candidate if isinstance(candidate, type) else type(candidate)
    kind = getattr(cls, "_kind", None)
    return kind if isinstance(kind, type) else None


class Loggable:
    """Gives a component a structlog logger bound with its class name."""

    log_subsystem = "listeners"

    @property
    def log(self):
        bound = getattr(self, "_bound_log", None)
        if bound is None:
            bound = structlog.get_logger(f"hookwire.{self.log_subsystem}").bind(
                component=type(self).__name__
            )
            self._bound_log = bound
        return bound


class Environmental:
    """Gives a component access to the current runtime environment."""

    @property
    def env(self) -> str:
        return current_env()


class Configurable:
    """Gives a component one named section of the settings.

    Call ``configure(config_key)`` from ``__init__``. A key that does not
    exist in settings raises ConfigurationError; no key at all yields an
    empty section (with a warning).
    """

    _config_key: Optional[str] = None
    _config_section: Optional[Dict[str, Any]] = None

    def configure(self, config_key: Optional[str], config: Optional[Config] = None) -> None:
        app_config = config or get_config()
        self._config_key = config_key
        self._config_section = app_config.get_section(config_key)
        self.app_config = app_config

    @property
    def config_key(self) -> Optional[str]:
        return self._config_key

    @property
    def config(self) -> Dict[str, Any]:
        return self._config_section if self._config_section is not None else {}
