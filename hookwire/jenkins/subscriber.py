"""Jenkins feature bundle: job commands, job flows and build following."""

import asyncio
from typing import Optional

from ..listeners import NotifyListenerGroup
from ..registry import Context
from ..subscriber import Subscriber
from .client import JenkinsClient
from .jobs_collection import JobsCollection
from .listeners import (
    ChooseJobInteractionListener,
    DeleteMessageInteractionListener,
    HelpSlashCommandListener,
    JobFollowNotifyListener,
    JobInfoInteractionListener,
    JobRtmListener,
    JobSlashCommandListener,
    JobsListOptionsListener,
)


class JenkinsSubscriber(Subscriber):
    """Wires the Jenkins listeners and the CI notification hook.

    Reads the ``jenkins`` settings section; ``notify_uri`` is where the
    Jenkins Notification plugin posts build phases.
    """

    config_key = "jenkins"
    notify_listener_group: NotifyListenerGroup

    def __init__(self, registry=None):
        super().__init__(registry)
        self._refresh_task: Optional[asyncio.Task] = None

    def register(self, context: Context) -> None:
        bot = context.get("bot")
        client = JenkinsClient(self.config_key, config=bot.app_config if bot is not None else None)
        context.set(client)
        context.set(JobsCollection(client, db=context.get("db")))

    def subscribe(self, context: Context) -> None:
        self.slash_command_listener_group.add([
            JobSlashCommandListener,
            HelpSlashCommandListener,
        ])
        self.options_listener_group.add([
            JobsListOptionsListener,
        ])
        self.interaction_listener_group.add([
            ChooseJobInteractionListener,
            DeleteMessageInteractionListener,
            JobInfoInteractionListener,
        ])
        self.rtm_listener_group.add([
            JobRtmListener,
        ])

        self.add_listener_groups(NotifyListenerGroup)
        self.notify_listener_group.add(JobFollowNotifyListener)

        client = context.get("JenkinsClient")
        if client.notify_uri:
            self.add_hook(
                client.notify_uri,
                self.hook_handler("notify_listener_group", context.get("transport")),
            )
            self.log.info("hook_wired", uri=client.notify_uri, group="notify_listener_group")
        else:
            self.log.warning("jenkins_notify_uri_missing")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.log.warning("jobs_bootstrap_skipped", reason="no running event loop")
            return
        self._refresh_task = loop.create_task(self._bootstrap(context))

    async def _bootstrap(self, context: Context) -> None:
        try:
            await context.get("JobsCollection").refresh()
        except Exception as e:
            self.log.error("jobs_bootstrap_failed", error=str(e))

    async def deactivate(self, context: Context) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        await context.get("JenkinsClient").close()
