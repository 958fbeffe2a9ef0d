"""Main entry point for hookwire.

Initializes logging in two phases (defaults then config-driven), builds
one ChatBot per entry of the ``bots`` setting with its subscribers, and
runs until SIGTERM/SIGINT, then stops every bot.

Key functions:
    load_subscriber: Resolve a ``"module:Class"`` subscriber reference.
    build_bots: Create the configured bots.
    main: Async entry point.
    run: Synchronous wrapper that calls asyncio.run(main()).
"""

import asyncio
import importlib
import signal
import sys
from typing import List

import structlog

from . import __version__
from .exceptions import ConfigurationError
from .logging_config import setup_logging


def load_subscriber(reference: str) -> type:
    """Import the Subscriber class named by ``"package.module:ClassName"``."""
    from .subscriber import Subscriber

    module_name, sep, class_name = reference.partition(":")
    if not sep or not module_name or not class_name:
        raise ConfigurationError(
            f"Subscriber reference must look like 'module:Class', got {reference!r}",
            setting_name="subscribers",
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(
            f"Unable to import subscriber module {module_name}: {e}",
            setting_name="subscribers",
        ) from e

    subscriber_cls = getattr(module, class_name, None)
    if not (isinstance(subscriber_cls, type) and issubclass(subscriber_cls, Subscriber)):
        raise ConfigurationError(
            f"{reference} is not a Subscriber class",
            setting_name="subscribers",
        )
    return subscriber_cls


def build_bots(config) -> List:
    """Create one ChatBot per configured bot name, subscribers queued."""
    from .bot import ChatBot
    from .db import SqliteDbAdapter

    bots = []
    for name in config.bot_names:
        section = config.get_section(name)
        db_adapter = SqliteDbAdapter(config.db_path) if section.get("db", True) else None
        bot = ChatBot(name, config=config, db_adapter=db_adapter)
        for reference in section.get("subscribers", []):
            bot.add_subscriber(load_subscriber(reference))
        bots.append(bot)
    return bots


def _shutdown_on_signals(logger) -> asyncio.Event:
    """Return an event set by SIGTERM/SIGINT."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def on_signal(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        stop.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, on_signal, sig)
        except NotImplementedError:
            # No loop signal handlers on Windows; Ctrl+C still works
            if sig == signal.SIGINT:
                signal.signal(sig, lambda s, f: on_signal(signal.SIGINT))
    return stop


async def main():
    """Main async entry point."""
    # Phase 1: defaults, cache_logger_on_first_use=False
    setup_logging()
    logger = structlog.get_logger("hookwire")

    logger.info("hookwire_starting", version=__version__)

    # Import here to ensure logging is configured first
    from .config import get_config
    from .registry import get_registry

    config = get_config()
    config.validate()

    # Phase 2: reconfigure with real config, cache_logger_on_first_use=True
    setup_logging(config)

    bots = build_bots(config)
    if not bots:
        logger.error("no_bots_to_start")
        return

    shutdown_event = _shutdown_on_signals(logger)

    try:
        for bot in bots:
            await bot.start()
        logger.info("registry_tree", tree=get_registry().describe())

        await shutdown_event.wait()

    except Exception as e:
        logger.error("bot_error", error=str(e))
        raise
    finally:
        for bot in bots:
            await bot.stop()
        get_registry().clear()
        logger.info("hookwire_stopped")


def run():
    """Synchronous entry point for the ``hookwire`` console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except SystemExit as e:
        sys.exit(e.code)


if __name__ == "__main__":
    run()
