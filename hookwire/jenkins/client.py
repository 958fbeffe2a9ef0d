"""Async client for the Jenkins Remote API.

Reads its connection settings from the ``jenkins`` section of
settings.yaml:

    jenkins:
      url: jenkins.example.com
      protocol: https
      port: 8443            # optional
      user: ci-bot
      token_env: JENKINS_TOKEN
      csrf_protection: true
      notify_uri: /jenkins/notify

Key classes:
    JenkinsClient: aiohttp client with basic auth and CSRF crumbs.
"""

import asyncio
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from ..capabilities import Configurable, Identifiable, Loggable
from ..config import Config
from ..exceptions import ConfigurationError, ErrorCategory, JenkinsError
from .models import Build, Job

JOBS_TREE = (
    "jobs[name,url,description,color,inQueue,lastBuild[number,url],"
    "actions[parameterDefinitions[name,type,description,choices,"
    "defaultParameterValue[value]]]]"
)


class JenkinsClient(Identifiable, Loggable, Configurable):
    """Talks to one Jenkins instance.

    Args:
        config_key: Settings section to read (default "jenkins").
        config: Config to read from (default: process-wide).

    Raises:
        ConfigurationError: If the section is missing or has no token.
    """

    log_subsystem = "jenkins"

    def __init__(self, config_key: str = "jenkins", config: Optional[Config] = None):
        self.configure(config_key, config)
        settings = self.config

        token = Config.resolve_secret(settings, "token")
        if not token:
            raise ConfigurationError(
                "Unable to acquire Jenkins token from config!",
                setting_name=f"{config_key}.token",
            )
        self._auth = aiohttp.BasicAuth(settings.get("user", ""), token)
        self.csrf_protection = bool(settings.get("csrf_protection", False))
        self._session: Optional[aiohttp.ClientSession] = None
        self._crumb: Optional[Dict[str, str]] = None

    @property
    def base_url(self) -> str:
        url = str(self.config.get("url", "")).rstrip("/")
        if not url.startswith(("http://", "https://")):
            url = f"{self.config.get('protocol', 'https')}://{url}"
        port = self.config.get("port")
        if port:
            url = f"{url}:{port}"
        return url

    @property
    def notify_uri(self) -> Optional[str]:
        return self.config.get("notify_uri")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create a shared aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        """Close the shared HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        expect_json: bool = True,
    ) -> Any:
        session = await self._get_session()
        headers: Dict[str, str] = {}
        if method == "POST" and self.csrf_protection:
            headers.update(await self._get_crumb())

        url = f"{self.base_url}{path}"
        try:
            async with session.request(
                method,
                url,
                params=params,
                headers=headers,
                auth=self._auth,
                timeout=aiohttp.ClientTimeout(total=30),
            ) as resp:
                if resp.status >= 400:
                    error_text = await resp.text()
                    self.log.error(
                        "jenkins_api_error",
                        method=method, path=path, status=resp.status,
                        error=error_text[:500],
                    )
                    raise JenkinsError(
                        f"Jenkins {method} {path} returned {resp.status}",
                        status=resp.status,
                        category=(
                            ErrorCategory.TRANSIENT if resp.status >= 500
                            else ErrorCategory.PERMANENT
                        ),
                    )
                if expect_json:
                    return await resp.json(content_type=None)
                return {"status": resp.status, "location": resp.headers.get("Location")}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.log.warning("jenkins_request_failed", method=method, path=path, error=str(e))
            raise JenkinsError(f"Jenkins request failed: {e}") from e

    async def _get_crumb(self) -> Dict[str, str]:
        if self._crumb is None:
            data = await self._request("GET", "/crumbIssuer/api/json")
            self._crumb = {data["crumbRequestField"]: data["crumb"]}
        return self._crumb

    @staticmethod
    def _job_path(name: str) -> str:
        return f"/job/{quote(name, safe='')}"

    async def get_info(self, tree: Optional[str] = None) -> Dict[str, Any]:
        """General information about the instance and its jobs."""
        return await self._request("GET", "/api/json", params={"tree": tree} if tree else None)

    async def get_jobs(self) -> List[Job]:
        self.log.debug("listing_jobs")
        info = await self.get_info(tree=JOBS_TREE)
        jobs = [Job.from_api(job) for job in info.get("jobs", [])]
        self.log.debug("jobs_listed", count=len(jobs))
        return jobs

    async def get_job(self, name: str) -> Job:
        self.log.debug("getting_job", job=name)
        data = await self._request("GET", f"{self._job_path(name)}/api/json")
        return Job.from_api(data)

    async def get_build(self, name: str, number: int) -> Build:
        data = await self._request("GET", f"{self._job_path(name)}/{int(number)}/api/json")
        return Build.model_validate(data)

    async def build_job(self, name: str, parameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Queue a build. Returns the status and queue item location."""
        self.log.info("building_job", job=name, parameters=sorted(parameters or {}))
        if parameters:
            return await self._request(
                "POST", f"{self._job_path(name)}/buildWithParameters",
                params=parameters, expect_json=False,
            )
        return await self._request("POST", f"{self._job_path(name)}/build", expect_json=False)
