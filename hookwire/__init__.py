"""hookwire: a multi-bot chat-ops framework driven by listeners and hooks."""

__version__ = "0.3.0"
