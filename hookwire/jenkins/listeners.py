"""Listeners behind the ``/jenkins`` slash command and its interactive flows.

Flow for ``/jenkins job``:
    JobSlashCommandListener picks a job (or asks for one with
    ChooseJobInteractionListener.initiate) -> jobSelection shows the
    actions -> jobAction runs one (info, build, follow) -> a build with
    parameters opens a dialog answered by buildJobDialogResponse.

Collaborators are looked up in the listener's registry context:
``JenkinsClient``, ``JobsCollection``, ``transport`` and the other
listeners by class name.
"""

import shlex
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..listeners import (
    InteractionListener,
    NotifyListener,
    OptionsListener,
    RtmListener,
    SlashCommandListener,
    state,
)
from ..listeners.group import MAX_OPTIONS
from ..message import Message
from . import attachments as att
from .formatters import job_follow_text, job_info_attachments
from .models import BuildPhase, Notification

MIN_FILTER_LENGTH = 2


JOB_USAGE = "\n".join([
    "job [name] [--info|-i] [--follow|-f]",
    "",
    "Interact with a Jenkins job. Without a name you get a list of jobs",
    "to choose from.",
    "",
    "  --info, -i     View info about the job, including any parameters.",
    "  --follow, -f   Receive a DM that is updated with build status.",
])


@dataclass
class JobCommand:
    name: Optional[str] = None
    info: bool = False
    follow: bool = False
    help: bool = False


def parse_job_command(text: str) -> JobCommand:
    """Parse ``job [name] [flags]``.

    Raises:
        ValueError: On unknown flags or unbalanced quotes.
    """
    tokens = shlex.split(text)[1:]
    command = JobCommand()
    for token in tokens:
        if token in ("--info", "-i"):
            command.info = True
        elif token in ("--follow", "-f"):
            command.follow = True
        elif token in ("--help", "-h"):
            command.help = True
        elif token.startswith("-"):
            raise ValueError(f"Unknown argument: {token}")
        elif command.name is None:
            command.name = token
        else:
            raise ValueError(f"Unexpected argument: {token}")
    return command


def _selected_value(message: Message) -> Optional[str]:
    actions = message.get("actions") or []
    if not actions:
        return None
    action = actions[0]
    selected = action.get("selected_options") or []
    if selected:
        return selected[0].get("value")
    return action.get("value")


class JobSlashCommandListener(SlashCommandListener):
    """Handles ``job [name] [--info] [--follow]``."""

    pattern = r"^job(?= |$)"
    help = "Interact with a Jenkins job (info, build, follow)."

    async def process(self, message: Message) -> Any:
        context = self.context
        try:
            command = parse_job_command(message.text)
        except ValueError as e:
            return await message.respond(text=f"`{e}`")

        if command.help:
            return await message.respond(
                text=f"```\n{JOB_USAGE}\n```",
                attachments=[att.dismiss_button(message.message_ts)],
            )

        chooser = context.get("ChooseJobInteractionListener")
        if not command.name:
            self.log.debug("job_command_interactive")
            return await chooser.initiate(message)

        jobs = context.get("JobsCollection")
        matched = jobs.find(command.name)
        exact = [job for job in matched if job.name.lower() == command.name.lower()]
        if exact:
            matched = exact
        self.log.debug("job_command_matches", name=command.name, count=len(matched))

        if not matched:
            return await message.respond(text="Unable to find a job with given name!")

        if len(matched) > 1:
            options = [{"text": job.name, "value": job.name} for job in matched[:MAX_OPTIONS]]
            return await chooser.initiate(message, options=options)

        job_name = matched[0].name
        if command.info:
            return await context.get("JobInfoInteractionListener").initiate(message, job_name=job_name)
        if command.follow:
            follower = await context.get("JobFollowNotifyListener").add_follower(
                user=message.user_id, job_name=job_name,
            )
            return await message.respond(
                text=f"OK! You are now following *{follower.job_name}* until the next build finishes!",
            )
        return await chooser.job_selection(message, job_name=job_name)


class HelpSlashCommandListener(SlashCommandListener):
    """Lists the slash command patterns known in this bot's context."""

    pattern = r"^help$"
    help = "List the commands I recognize."

    async def process(self, message: Message) -> Any:
        command = message.get("command") or "the slash"
        lines = [f"These are the `{command}` commands (patterns) I recognize:"]
        for name, value in self.context:
            if not name.endswith("SlashCommandListener") or not isinstance(value, SlashCommandListener):
                continue
            pattern = value.compiled_pattern().pattern
            lines.append(f"  `{pattern}`" + (f" - {value.help}" if value.help else ""))
        return await message.respond(text="\n".join(lines))


class JobRtmListener(RtmListener):
    """Points people typing ``job ...`` in a channel to the slash command."""

    pattern = r"^job(?= |$)"

    async def process(self, message: Message) -> Any:
        return await message.reply("Try `/jenkins job [name]` to work with a Jenkins job.")


class JobsListOptionsListener(OptionsListener):
    """Options for the ``jobsList`` select, filtered by what the user typed."""

    name = "jobsList"

    def process(self, message: Message) -> List[Dict[str, str]]:
        value = (message.get("value") or "").lower()
        jobs = self.context.get("JobsCollection")
        options = [{"text": job.name, "value": job.name} for job in jobs.find()]
        if len(value) >= MIN_FILTER_LENGTH:
            options = [opt for opt in options if value in opt["value"].lower()]
        return options[:MAX_OPTIONS]


class ChooseJobInteractionListener(InteractionListener):
    """Choose a job, then what to do with it."""

    async def initiate(self, message: Message, options: Optional[List[dict]] = None) -> Any:
        """Present a select of jobs; loaded from the options hook unless ``options`` is given."""
        attachments = [
            att.interactive(
                "jobSelection",
                "Loading jobs...",
                [att.select("jobsList", "Pick a job...", options, external=options is None)],
                title="Choose a job",
            ),
            att.dismiss_button(message.message_ts),
        ]
        return await message.respond(attachments=attachments, response_type="ephemeral")

    @state("jobSelection")
    async def job_selection(self, message: Message, job_name: Optional[str] = None) -> Any:
        selected = job_name or _selected_value(message)
        actions = [
            att.button("action", "Get Info", f"{selected}#getInfo"),
            att.button("action", "Build", f"{selected}#build"),
            att.button("action", "Follow", f"{selected}#follow"),
        ]
        attachments = [
            att.interactive(
                "jobAction",
                f"Showing available actions related to chosen job: {selected}",
                actions,
                title=f"Job: {selected}",
            ),
            att.dismiss_button(message.message_ts),
        ]
        return await message.respond(
            attachments=attachments, response_type="ephemeral", replace_original=True,
        )

    @state("jobAction")
    async def job_action(self, message: Message) -> Any:
        value = _selected_value(message) or ""
        job_name, _, action = value.partition("#")
        context = self.context
        self.log.debug("job_action_selected", job=job_name, action=action)

        if action == "getInfo":
            return await context.get("JobInfoInteractionListener").initiate(message, job_name=job_name)

        if action == "build":
            job = context.get("JobsCollection").by_name(job_name)
            if job is not None and job.params:
                dialog = build_dialog(job_name, [param.as_line() for param in job.params])
                return await context.get("transport").open_dialog(message.get("trigger_id"), dialog)
            result = await context.get("JenkinsClient").build_job(job_name)
            await message.respond(
                text=f"*{job_name}* has been queued.",
                attachments=[att.dismiss_button(message.message_ts)],
            )
            return result

        if action == "follow":
            follower = await context.get("JobFollowNotifyListener").add_follower(
                user=message.user_id, job_name=job_name,
            )
            return await message.respond(
                text=f"OK! You are now following *{follower.job_name}* until the next build finishes!",
                attachments=[att.dismiss_button(message.message_ts)],
            )

        raise ValueError(f"Unable to determine last button action from '{action}'.")

    @state("buildJobDialogResponse")
    async def build_job_dialog_response(self, message: Message) -> Any:
        submission = message.get("submission") or {}
        params_key = next((key for key in submission if "#" in key), None)
        if params_key is None:
            raise ValueError("Dialog submission has no parameters field")

        job_name = params_key.split("#", 1)[0]
        parameters = parse_param_lines(submission.get(params_key) or "")
        context = self.context

        if submission.get("follow") == "true":
            follower = await context.get("JobFollowNotifyListener").add_follower(
                user=message.user_id, job_name=job_name,
            )
            await message.respond(
                text=f"OK! You are now following *{follower.job_name}*. Let's kick it off!",
                attachments=[att.dismiss_button(message.message_ts)],
            )

        self.log.info("building_job_from_dialog", job=job_name, parameters=sorted(parameters))
        return await context.get("JenkinsClient").build_job(job_name, parameters)


def build_dialog(job_name: str, param_lines: List[str]) -> Dict[str, Any]:
    return {
        "callback_id": "buildJobDialogResponse",
        "title": job_name[:24],
        "submit_label": "Build",
        "elements": [
            {
                "type": "select",
                "name": "follow",
                "label": "Follow this build?",
                "value": "true",
                "options": [
                    {"label": "follow", "value": "true"},
                    {"label": "do not follow", "value": "false"},
                ],
            },
            {
                "type": "textarea",
                "name": f"{job_name}#params",
                "label": "Parameters",
                "value": "\n".join(param_lines),
            },
        ],
    }


def parse_param_lines(text: str) -> Dict[str, str]:
    """``NAME=value`` lines -> dict. Blank lines are skipped."""
    parameters = {}
    for line in text.splitlines():
        if not line.strip():
            continue
        name, _, value = line.partition("=")
        parameters[name.strip()] = value.strip()
    return parameters


class JobInfoInteractionListener(InteractionListener):
    """Job summary with a picker for parameter details."""

    async def initiate(self, message: Message, job_name: Optional[str] = None) -> Any:
        job = await self.context.get("JenkinsClient").get_job(job_name)
        attachments = job_info_attachments(job, message.message_ts)
        if message.response_url:
            return await message.respond(attachments=attachments)
        return await message.whisper(attachments=attachments)

    @state("jobParamInfo")
    async def job_param_info(self, message: Message) -> Any:
        selected = _selected_value(message) or ""
        job_name, _, param_name = selected.partition("#")
        if not (job_name and param_name):
            self.log.warning("job_param_info_incomplete", selected=selected)
            return None
        job = await self.context.get("JenkinsClient").get_job(job_name)
        attachments = job_info_attachments(job, message.message_ts, selected_value=selected)
        return await message.respond(attachments=attachments, replace_original=True)


class DeleteMessageInteractionListener(InteractionListener):
    """Backs every Dismiss button."""

    @state("deleteMessage")
    async def delete_message(self, message: Message) -> Any:
        return await message.delete()


@dataclass
class Follower:
    user: str
    channel: str
    job_name: str
    message_ts: Optional[str] = None


class JobFollowNotifyListener(NotifyListener):
    """DMs followers a status board that is updated in place per build phase.

    Followers are dropped once their build reaches FINALIZED.
    """

    def __init__(self, registry=None):
        super().__init__(registry)
        self.followers: List[Follower] = []

    async def add_follower(self, user: str, job_name: str) -> Follower:
        for follower in self.followers:
            if follower.user == user and follower.job_name == job_name:
                return follower
        channel = await self.context.get("transport").open_direct_message(user)
        follower = Follower(user=user, channel=channel["id"], job_name=job_name)
        self.followers.append(follower)
        self.log.info("follower_added", user=user, job=job_name)
        return follower

    def match(self, message: Message) -> bool:
        name = message.get("name")
        return any(follower.job_name == name for follower in self.followers)

    async def process(self, message: Message) -> List[Follower]:
        notification = Notification.model_validate(message.json)
        transport = self.context.get("transport")
        text = job_follow_text(notification)
        finalized = notification.build.phase == BuildPhase.FINALIZED
        notified = []

        for follower in list(self.followers):
            if follower.job_name != notification.name:
                continue
            if not follower.message_ts:
                resp = await transport.post_message(channel=follower.channel, text=text)
                follower.message_ts = resp.get("ts")
            else:
                attachments = [att.dismiss_button(follower.message_ts)] if finalized else []
                await transport.update_message(
                    channel=follower.channel, ts=follower.message_ts,
                    text=text, attachments=attachments,
                )
            notified.append(follower)
            if finalized:
                self.followers.remove(follower)

        self.log.debug(
            "notification_processed", job=notification.name,
            phase=notification.build.phase.value, followers=len(notified),
        )
        return notified
