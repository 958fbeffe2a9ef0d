"""Tests for the /jenkins slash command, its interactive flows and build following."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from hookwire.jenkins.attachments import DISMISS_CALLBACK_ID
from hookwire.jenkins.jobs_collection import JobsCollection
from hookwire.jenkins.listeners import (
    ChooseJobInteractionListener,
    DeleteMessageInteractionListener,
    HelpSlashCommandListener,
    JobFollowNotifyListener,
    JobInfoInteractionListener,
    JobRtmListener,
    JobSlashCommandListener,
    JobsListOptionsListener,
)
from hookwire.jenkins.models import Job
from hookwire.listeners import (
    InteractionListenerGroup,
    NotifyListenerGroup,
    OptionsListenerGroup,
    RtmListenerGroup,
    SlashCommandListenerGroup,
)
from hookwire.listeners.group import MAX_OPTIONS
from hookwire.message import HookResponse, Message

RESPONSE_URL = "https://hooks.slack.test/actions/T1/1/abc"

RAW_JOB = {
    "name": "api-deploy",
    "color": "blue",
    "lastBuild": {"number": 41, "url": "https://ci/job/api-deploy/41/"},
    "actions": [{
        "parameterDefinitions": [
            {
                "name": "ENV",
                "type": "ChoiceParameterDefinition",
                "choices": ["prod", "staging"],
                "defaultParameterValue": {"value": "prod"},
            },
            {
                "name": "DRY_RUN",
                "type": "BooleanParameterDefinition",
                "defaultParameterValue": {"value": False},
            },
            {"name": "TAG", "type": "StringParameterDefinition"},
        ],
    }],
}

JOBS = [
    Job.from_api(RAW_JOB),
    Job.from_api({"name": "api-test", "color": "red"}),
    Job.from_api({"name": "web", "color": "blue"}),
]


class Bot:
    """One bot context with every Jenkins listener wired into its groups."""

    def __init__(self, registry, transport):
        self.transport = transport
        self.client = MagicMock()
        self.client.get_jobs = AsyncMock(return_value=JOBS)
        self.client.get_job = AsyncMock(side_effect=lambda name: next(j for j in JOBS if j.name == name))
        self.client.build_job = AsyncMock(return_value={"status": 201, "location": None})
        self.jobs = JobsCollection(self.client)

        self.context = registry.context("jenkinsBot")
        self.context.set("transport", transport)
        self.context.set("JenkinsClient", self.client)
        self.context.set(self.jobs)

        self.slash = self._group(registry, SlashCommandListenerGroup, [
            JobSlashCommandListener, HelpSlashCommandListener,
        ])
        self.interaction = self._group(registry, InteractionListenerGroup, [
            ChooseJobInteractionListener, DeleteMessageInteractionListener, JobInfoInteractionListener,
        ])
        self.options = self._group(registry, OptionsListenerGroup, [JobsListOptionsListener])
        self.rtm = self._group(registry, RtmListenerGroup, [JobRtmListener])
        self.notify = self._group(registry, NotifyListenerGroup, [JobFollowNotifyListener])

    def _group(self, registry, group_cls, listeners):
        group = group_cls(registry=registry)
        self.context.set(group)
        return group.add(listeners)

    @property
    def follow(self):
        return self.context.get("JobFollowNotifyListener")

    def command(self, text):
        return Message({
            "command": "/jenkins",
            "text": text,
            "user_id": "U1",
            "channel_id": "C1",
            "response_url": RESPONSE_URL,
        }, transport=self.transport)

    def interaction_payload(self, callback_id, value=None, selected=None, **extra):
        action = {"name": "action"}
        if value is not None:
            action["value"] = value
        if selected is not None:
            action["selected_options"] = [{"value": selected}]
        payload = {
            "callback_id": callback_id,
            "actions": [action],
            "user": {"id": "U1", "name": "ada"},
            "channel": {"id": "C1", "name": "ops"},
            "message_ts": "1700000000.0001",
            "trigger_id": "trigger-1",
            "response_url": RESPONSE_URL,
        }
        payload.update(extra)
        return Message(payload, transport=self.transport)

    def responses(self):
        return [call["body"] for call in self.transport.calls_to("send_response")]


@pytest_asyncio.fixture
async def bot(registry, transport):
    jenkins_bot = Bot(registry, transport)
    await jenkins_bot.jobs.refresh()
    return jenkins_bot


# ---------------------------------------------------------------------------
# Slash command
# ---------------------------------------------------------------------------

class TestJobCommand:

    @pytest.mark.asyncio
    async def test_bare_command_offers_external_job_select(self, bot):
        await bot.slash.process(bot.command("job"))

        [body] = bot.responses()
        chooser = body["attachments"][0]
        assert body["response_type"] == "ephemeral"
        assert chooser["callback_id"] == "jobSelection"
        assert chooser["actions"][0]["name"] == "jobsList"
        assert chooser["actions"][0]["data_source"] == "external"
        assert body["attachments"][-1]["callback_id"] == DISMISS_CALLBACK_ID

    @pytest.mark.asyncio
    async def test_exact_name_shows_actions(self, bot):
        await bot.slash.process(bot.command("job web"))

        [body] = bot.responses()
        actions = body["attachments"][0]["actions"]
        assert body["attachments"][0]["callback_id"] == "jobAction"
        assert [a["value"] for a in actions] == ["web#getInfo", "web#build", "web#follow"]
        assert body["replace_original"] is True

    @pytest.mark.asyncio
    async def test_exact_name_preferred_over_partial_matches(self, bot):
        bot.jobs._jobs["api"] = Job(name="api")
        await bot.slash.process(bot.command("job api"))

        [body] = bot.responses()
        assert body["attachments"][0]["callback_id"] == "jobAction"
        assert body["attachments"][0]["actions"][0]["value"] == "api#getInfo"

    @pytest.mark.asyncio
    async def test_ambiguous_name_offers_static_select(self, bot):
        await bot.slash.process(bot.command("job api"))

        [body] = bot.responses()
        select = body["attachments"][0]["actions"][0]
        assert select["data_source"] == "static"
        assert [o["value"] for o in select["options"]] == ["api-deploy", "api-test"]

    @pytest.mark.asyncio
    async def test_unknown_job(self, bot):
        await bot.slash.process(bot.command("job nope"))
        assert bot.responses() == [{"text": "Unable to find a job with given name!", "attachments": []}]

    @pytest.mark.asyncio
    async def test_bad_flag_reported(self, bot):
        await bot.slash.process(bot.command("job web --bogus"))
        [body] = bot.responses()
        assert "Unknown argument: --bogus" in body["text"]

    @pytest.mark.asyncio
    async def test_usage(self, bot):
        await bot.slash.process(bot.command("job --help"))
        [body] = bot.responses()
        assert "--follow, -f" in body["text"]

    @pytest.mark.asyncio
    async def test_info_flag(self, bot):
        await bot.slash.process(bot.command("job api-deploy -i"))

        bot.client.get_job.assert_awaited_once_with("api-deploy")
        [body] = bot.responses()
        assert body["attachments"][0]["title"] == "api-deploy"

    @pytest.mark.asyncio
    async def test_follow_flag(self, bot):
        await bot.slash.process(bot.command("job web -f"))

        [follower] = bot.follow.followers
        assert (follower.user, follower.channel, follower.job_name) == ("U1", "D-U1", "web")
        assert "following *web*" in bot.responses()[0]["text"]

    @pytest.mark.asyncio
    async def test_help_lists_slash_commands(self, bot):
        await bot.slash.process(bot.command("help"))

        [body] = bot.responses()
        assert "`/jenkins`" in body["text"]
        assert "`^job(?= |$)`" in body["text"]
        assert "`^help$`" in body["text"]

    @pytest.mark.asyncio
    async def test_unrelated_command_ignored(self, bot):
        assert await bot.slash.process(bot.command("deploy web")) is None
        assert bot.transport.calls == []


# ---------------------------------------------------------------------------
# Interactive flows
# ---------------------------------------------------------------------------

class TestChooseJobFlow:

    @pytest.mark.asyncio
    async def test_job_selection_from_select(self, bot):
        await bot.interaction.process(bot.interaction_payload("jobSelection", selected="api-test"))

        [body] = bot.responses()
        assert body["attachments"][0]["title"] == "Job: api-test"

    @pytest.mark.asyncio
    async def test_build_without_params_queues_job(self, bot):
        await bot.interaction.process(bot.interaction_payload("jobAction", value="web#build"))

        bot.client.build_job.assert_awaited_once_with("web")
        [body] = bot.responses()
        assert body["text"] == "*web* has been queued."

    @pytest.mark.asyncio
    async def test_build_with_params_opens_dialog(self, bot):
        await bot.interaction.process(bot.interaction_payload("jobAction", value="api-deploy#build"))

        bot.client.build_job.assert_not_awaited()
        [call] = bot.transport.calls_to("open_dialog")
        assert call["trigger_id"] == "trigger-1"
        textarea = call["dialog"]["elements"][1]
        assert textarea["value"] == "ENV=prod|staging\nDRY_RUN=False\nTAG=(string)"

    @pytest.mark.asyncio
    async def test_dialog_submission_builds_and_follows(self, bot):
        unit = bot.interaction_payload(
            "buildJobDialogResponse",
            submission={"follow": "true", "api-deploy#params": "ENV=staging\nDRY_RUN=true\n"},
        )

        await bot.interaction.process(unit)

        bot.client.build_job.assert_awaited_once_with(
            "api-deploy", {"ENV": "staging", "DRY_RUN": "true"},
        )
        assert [f.job_name for f in bot.follow.followers] == ["api-deploy"]

    @pytest.mark.asyncio
    async def test_dialog_submission_without_follow(self, bot):
        unit = bot.interaction_payload(
            "buildJobDialogResponse",
            submission={"follow": "false", "web#params": "TAG=v1"},
        )
        await bot.interaction.process(unit)
        assert bot.follow.followers == []
        bot.client.build_job.assert_awaited_once_with("web", {"TAG": "v1"})

    @pytest.mark.asyncio
    async def test_follow_action(self, bot):
        await bot.interaction.process(bot.interaction_payload("jobAction", value="web#follow"))
        assert [f.job_name for f in bot.follow.followers] == ["web"]

    @pytest.mark.asyncio
    async def test_get_info_action(self, bot):
        await bot.interaction.process(bot.interaction_payload("jobAction", value="web#getInfo"))
        bot.client.get_job.assert_awaited_once_with("web")

    @pytest.mark.asyncio
    async def test_unknown_action_raises(self, bot):
        with pytest.raises(ValueError, match="explode"):
            await bot.interaction.process(bot.interaction_payload("jobAction", value="web#explode"))


class TestJobInfoFlow:

    @pytest.mark.asyncio
    async def test_param_details(self, bot):
        await bot.interaction.process(bot.interaction_payload("jobParamInfo", selected="api-deploy#ENV"))

        [body] = bot.responses()
        assert body["replace_original"] is True
        assert len(body["attachments"]) == 4

    @pytest.mark.asyncio
    async def test_incomplete_selection_ignored(self, bot):
        assert await bot.interaction.process(bot.interaction_payload("jobParamInfo", selected="api-deploy")) is None
        bot.client.get_job.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_info_without_response_url_whispers(self, bot):
        listener = bot.context.get("JobInfoInteractionListener")
        await listener.initiate(Message({"channel_id": "C1", "user_id": "U1"}, transport=bot.transport), job_name="web")
        [call] = bot.transport.calls_to("post_ephemeral")
        assert call["user"] == "U1"


class TestDismiss:

    @pytest.mark.asyncio
    async def test_delete_message(self, bot):
        await bot.interaction.process(bot.interaction_payload(DISMISS_CALLBACK_ID, value="1700000000.0001"))
        assert bot.transport.calls_to("delete_message") == [{"channel": "C1", "ts": "1700000000.0001"}]


# ---------------------------------------------------------------------------
# Options and RTM
# ---------------------------------------------------------------------------

class TestJobsListOptions:

    @pytest.mark.asyncio
    async def test_filters_on_typed_value(self, bot):
        response = HookResponse()
        unit = Message({"name": "jobsList", "value": "API"}, response=response)

        options = await bot.options.process(unit)

        assert [o["value"] for o in options] == ["api-deploy", "api-test"]
        assert response.content_type == "application/json"

    @pytest.mark.asyncio
    async def test_short_value_returns_everything(self, bot):
        options = await bot.options.process(Message({"name": "jobsList", "value": "a"}))
        assert len(options) == 3

    @pytest.mark.asyncio
    async def test_capped_at_group_limit(self, bot):
        bot.client.get_jobs.return_value = [Job(name=f"job-{i}") for i in range(MAX_OPTIONS + 5)]
        await bot.jobs.refresh()

        listener = bot.context.get("JobsListOptionsListener")

        options = listener.process(Message({"name": "jobsList"}))

        assert len(options) == MAX_OPTIONS

    @pytest.mark.asyncio
    async def test_other_select_gets_no_options(self, bot):
        assert await bot.options.process(Message({"name": "envList"})) == []


class TestJobRtm:

    @pytest.mark.asyncio
    async def test_points_to_slash_command(self, bot):
        await bot.rtm.process(Message({"type": "message", "text": "job web", "channel": "C5"}, transport=bot.transport))
        [call] = bot.transport.calls_to("post_message")
        assert call["channel"] == "C5"
        assert "/jenkins job" in call["text"]


# ---------------------------------------------------------------------------
# Build following
# ---------------------------------------------------------------------------

def _notification(name, phase, status=None):
    return Message({
        "name": name,
        "url": f"job/{name}/",
        "build": {"number": 42, "phase": phase, "status": status, "full_url": f"https://ci/job/{name}/42/"},
    })


class TestFollow:

    @pytest.mark.asyncio
    async def test_add_follower_is_idempotent(self, bot):
        first = await bot.follow.add_follower("U1", "web")
        second = await bot.follow.add_follower("U1", "web")
        assert first is second
        assert len(bot.transport.calls_to("open_direct_message")) == 1

    @pytest.mark.asyncio
    async def test_unfollowed_job_not_matched(self, bot):
        await bot.follow.add_follower("U1", "web")
        assert await bot.notify.process(_notification("api-test", "STARTED")) is None
        assert bot.transport.calls_to("post_message") == []

    @pytest.mark.asyncio
    async def test_status_board_posted_then_updated(self, bot):
        await bot.follow.add_follower("U1", "web")
        await bot.follow.add_follower("U2", "web")

        await bot.notify.process(_notification("web", "QUEUED"))
        posts = bot.transport.calls_to("post_message")
        assert sorted(p["channel"] for p in posts) == ["D-U1", "D-U2"]
        assert posts[0]["text"].startswith("Following job: *web*")

        await bot.notify.process(_notification("web", "STARTED"))
        updates = bot.transport.calls_to("update_message")
        assert len(updates) == 2
        assert all(u["ts"] == "1000.0001" for u in updates)
        assert all(u["attachments"] == [] for u in updates)

    @pytest.mark.asyncio
    async def test_finalized_build_adds_dismiss_and_drops_followers(self, bot):
        await bot.follow.add_follower("U1", "web")
        await bot.notify.process(_notification("web", "STARTED"))

        await bot.notify.process(_notification("web", "FINALIZED", "SUCCESS"))

        [update] = bot.transport.calls_to("update_message")
        assert update["attachments"][0]["callback_id"] == DISMISS_CALLBACK_ID
        assert "(SUCCESS)" in update["text"]
        assert bot.follow.followers == []
        assert await bot.notify.process(_notification("web", "QUEUED")) is None
