"""Listener contract, listener kinds and listener groups."""

from .base import (
    Listener,
    NotifyListener,
    OptionsListener,
    RtmListener,
    SlashCommandListener,
    maybe_await,
)
from .group import (
    InteractionListenerGroup,
    ListenerGroup,
    NotifyListenerGroup,
    OptionsListenerGroup,
    RtmListenerGroup,
    SlashCommandListenerGroup,
)
from .interaction import InteractionListener, state

__all__ = [
    "InteractionListener",
    "InteractionListenerGroup",
    "Listener",
    "ListenerGroup",
    "NotifyListener",
    "NotifyListenerGroup",
    "OptionsListener",
    "OptionsListenerGroup",
    "RtmListener",
    "RtmListenerGroup",
    "SlashCommandListener",
    "SlashCommandListenerGroup",
    "maybe_await",
    "state",
]
