"""Text and attachment formatting for Jenkins messages."""

from typing import Any, Dict, List, Optional

from . import attachments as att
from .models import BuildPhase, Job, Notification

PHASES = [phase.value for phase in BuildPhase]


def job_follow_text(notification: Notification) -> str:
    """Status board for a followed build, one line per phase."""
    build = notification.build
    reached = PHASES.index(build.phase.value)
    lines = [f"Following job: *{notification.name}*"]
    for index, label in enumerate(PHASES):
        emoji = "black_square_button" if reached >= index else "black_square"
        status = f"  ({build.status})" if build.status and build.phase.value == label else ""
        lines.append(f":{emoji}:  {label}{status}")
    return "\n".join(lines)


def job_info_attachments(
    job: Job,
    message_ts: Optional[str] = None,
    selected_value: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Job summary, a param picker and, once picked, the param's details."""
    last_build = job.last_build
    build_link = (
        f"<{last_build.url}|{last_build.number}> (<{last_build.url}console|Console>)"
        if last_build else "never built"
    )
    attachments: List[Dict[str, Any]] = [{
        "fallback": job.description or job.name,
        "title": job.name,
        "title_link": job.url,
        "text": job.description or "",
        "fields": [
            att.field("Status", job.emoji, short=True),
            att.field("Last Build", build_link, short=True),
        ],
    }]

    options = [{"text": p.name, "value": f"{job.name}#{p.name}"} for p in job.params]
    selected = [opt for opt in options if opt["value"] == selected_value]
    if options:
        attachments.append(att.interactive(
            "jobParamInfo",
            "Select a param to view information about it",
            [att.select("jobParam", "Choose a param", options, selected=selected)],
            title="To view param details, select a param",
        ))

    if selected:
        param = next(p for p in job.params if p.name == selected[0]["text"])
        fields = [
            att.field("Description", param.description or ""),
            att.field("Type", f"`{param.type}`", short=True),
        ]
        if param.default not in (None, ""):
            fields.append(att.field("Default", f"`{param.default}`", short=True))
        if param.choices:
            fields.append(att.field("Choices", ", ".join(f"`{c}`" for c in param.choices)))
        attachments.append({
            "fallback": param.description or f"Describing: {param.name}",
            "fields": fields,
        })

    attachments.append(att.dismiss_button(message_ts))
    return attachments
