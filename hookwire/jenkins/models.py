"""Pydantic models for Jenkins REST API payloads.

Jenkins returns deeply nested JSON (parameter definitions are buried in
``actions``); these models keep only what the chat flows need.

Domain models:
    JobParam, Job, BuildRef, Build, NotificationBuild, Notification

Enums:
    BuildPhase
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

PARAM_TYPES = {
    "BooleanParameterDefinition": "boolean",
    "ChoiceParameterDefinition": "select",
    "StringParameterDefinition": "string",
}

# Jenkins ball color -> (status, emoji)
STATUS_COLORS: Dict[str, tuple] = {
    "queued": ("QUEUED", ":jenkins_status_grey:"),
    "red": ("FAILURE", ":jenkins_status_red:"),
    "red_anime": ("FAILURE", ":jenkins_status_red_anime:"),
    "yellow": ("UNSTABLE", ":jenkins_status_yellow:"),
    "yellow_anime": ("UNSTABLE", ":jenkins_status_yellow_anime:"),
    "blue": ("SUCCESS", ":jenkins_status_blue:"),
    "blue_anime": ("SUCCESS", ":jenkins_status_blue_anime:"),
    "grey": ("PENDING", ":jenkins_status_grey:"),
    "grey_anime": ("PENDING", ":jenkins_status_grey_anime:"),
    "disabled": ("DISABLED", ":jenkins_status_grey:"),
    "disabled_anime": ("DISABLED", ":jenkins_status_grey_anime:"),
    "aborted": ("ABORTED", ":jenkins_status_grey:"),
    "aborted_anime": ("ABORTED", ":jenkins_status_grey_anime:"),
    "notbuilt": ("NOTBUILT", ":jenkins_status_grey:"),
    "notbuilt_anime": ("NOTBUILT", ":jenkins_status_grey_anime:"),
}


class BuildPhase(str, Enum):
    """Phases reported by the Jenkins Notification plugin, in order."""
    QUEUED = "QUEUED"
    STARTED = "STARTED"
    COMPLETED = "COMPLETED"
    FINALIZED = "FINALIZED"


class JobParam(BaseModel):
    """A build parameter definition, flattened."""
    name: str
    type: str = "string"
    description: Optional[str] = None
    default: Optional[Any] = None
    choices: Optional[List[str]] = None

    @classmethod
    def from_definition(cls, definition: Dict[str, Any]) -> "JobParam":
        raw_type = definition.get("type", "")
        default = (definition.get("defaultParameterValue") or {}).get("value")
        return cls(
            name=definition["name"],
            type=PARAM_TYPES.get(raw_type, raw_type or "string"),
            description=definition.get("description") or None,
            default=default,
            choices=definition.get("choices"),
        )

    def as_line(self) -> str:
        """``name=value`` line used to prefill the build dialog."""
        if self.choices:
            return f"{self.name}={'|'.join(self.choices)}"
        if self.default is not None:
            return f"{self.name}={self.default}"
        return f"{self.name}=({self.type})"


def param_defs(job: Dict[str, Any]) -> List[JobParam]:
    """Extract parameter definitions from a raw job's ``actions``."""
    for action in job.get("actions") or []:
        definitions = (action or {}).get("parameterDefinitions")
        if isinstance(definitions, list) and definitions:
            return [JobParam.from_definition(d) for d in definitions]
    return []


class BuildRef(BaseModel):
    number: int
    url: str = ""


class Job(BaseModel):
    """A Jenkins job as the chat flows see it."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    url: str = ""
    description: Optional[str] = None
    color: Optional[str] = None
    in_queue: bool = Field(default=False, alias="inQueue")
    last_build: Optional[BuildRef] = Field(default=None, alias="lastBuild")
    params: List[JobParam] = Field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Job":
        payload = {k: v for k, v in data.items() if k != "actions"}
        payload["params"] = param_defs(data)
        return cls.model_validate(payload)

    @property
    def status(self) -> str:
        return self._status_entry()[0]

    @property
    def emoji(self) -> str:
        return self._status_entry()[1]

    def _status_entry(self) -> tuple:
        if self.in_queue:
            return STATUS_COLORS["queued"]
        return STATUS_COLORS.get(self.color or "", ("UNKNOWN", ":grey_question:"))


class Build(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    number: int
    url: str = ""
    result: Optional[str] = None
    building: bool = False
    duration: int = 0
    display_name: Optional[str] = Field(default=None, alias="displayName")


class NotificationBuild(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    number: Optional[int] = None
    phase: BuildPhase
    status: Optional[str] = None
    full_url: Optional[str] = None
    url: Optional[str] = None


class Notification(BaseModel):
    """Body posted by the Jenkins Notification plugin."""
    name: str
    url: Optional[str] = None
    build: NotificationBuild
