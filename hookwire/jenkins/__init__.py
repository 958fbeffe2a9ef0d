"""Jenkins subscriber: job commands, interactive job flows and build following."""

from .client import JenkinsClient
from .jobs_collection import JobsCollection
from .subscriber import JenkinsSubscriber

__all__ = ["JenkinsClient", "JenkinsSubscriber", "JobsCollection"]
