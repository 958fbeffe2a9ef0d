"""Plain-dict attachment snippets used by the Jenkins flows."""

from typing import Any, Dict, List, Optional

DISMISS_CALLBACK_ID = "deleteMessage"


def button(name: str, text: str, value: Any, style: Optional[str] = None) -> Dict[str, Any]:
    action = {"type": "button", "name": name, "text": text, "value": value}
    if style:
        action["style"] = style
    return action


def select(
    name: str,
    text: str,
    options: Optional[List[dict]] = None,
    external: bool = False,
    selected: Optional[List[dict]] = None,
) -> Dict[str, Any]:
    """A select element; ``external`` loads options from the options hook."""
    action: Dict[str, Any] = {"type": "select", "name": name, "text": text}
    if external:
        action["data_source"] = "external"
    else:
        action["data_source"] = "static"
        action["options"] = list(options or [])
        if selected:
            action["selected_options"] = list(selected)
    return action


def interactive(
    callback_id: str,
    fallback: str,
    actions: List[dict],
    title: Optional[str] = None,
    color: Optional[str] = None,
) -> Dict[str, Any]:
    attachment = {
        "callback_id": callback_id,
        "fallback": fallback,
        "attachment_type": "default",
        "actions": actions,
    }
    if title:
        attachment["title"] = title
    if color:
        attachment["color"] = color
    return attachment


def dismiss_button(ts: Optional[str] = None, text: str = "Dismiss") -> Dict[str, Any]:
    """Attachment whose button deletes the message it sits on."""
    return interactive(
        DISMISS_CALLBACK_ID,
        "Darn! Tried to show Dismiss button...",
        [button("action", text, ts or "", style="danger")],
        color="#3AA3E3",
    )


def field(title: str, value: Any, short: bool = False) -> Dict[str, Any]:
    return {"title": title, "value": value, "short": short}
