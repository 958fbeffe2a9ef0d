"""Cached list of Jenkins jobs.

Options loads fire on every keystroke, so job names are served from
this cache instead of the Jenkins API. The cache is refreshed from
Jenkins on subscribe and mirrored into the bot's sqlite database, so a
restart has job names before the first refresh completes.
"""

import re
import sqlite3
from typing import Dict, List, Optional

from ..capabilities import Identifiable, Loggable
from ..exceptions import DatabaseError
from .client import JenkinsClient
from .models import Job

TABLE = "jenkins_jobs"


class JobsCollection(Identifiable, Loggable):
    """Job records keyed by name.

    Args:
        client: JenkinsClient used by ``refresh``.
        db: Optional sqlite3 connection the records are mirrored to.
    """

    log_subsystem = "jenkins"

    def __init__(self, client: JenkinsClient, db: Optional[sqlite3.Connection] = None):
        self._client = client
        self._db = db
        self._jobs: Dict[str, Job] = {}
        if db is not None:
            self._ensure_table()
            self._load()

    def __len__(self) -> int:
        return len(self._jobs)

    def names(self) -> List[str]:
        return list(self._jobs)

    def by_name(self, name: str) -> Optional[Job]:
        return self._jobs.get(name)

    def find(self, pattern: Optional[str] = None) -> List[Job]:
        """Jobs whose name matches ``pattern`` (case-insensitive regex)."""
        if not pattern:
            return list(self._jobs.values())
        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error:
            regex = re.compile(re.escape(pattern), re.IGNORECASE)
        return [job for name, job in self._jobs.items() if regex.search(name)]

    async def refresh(self) -> List[Job]:
        """Replace the cache with the current job list from Jenkins."""
        self.log.debug("refreshing_jobs")
        jobs = await self._client.get_jobs()
        self._jobs = {job.name: job for job in jobs}
        self._persist()
        self.log.info("jobs_refreshed", count=len(jobs))
        return jobs

    def _ensure_table(self) -> None:
        try:
            self._db.execute(
                f"CREATE TABLE IF NOT EXISTS {TABLE} (name TEXT PRIMARY KEY, data TEXT NOT NULL)"
            )
            self._db.commit()
        except sqlite3.Error as e:
            raise DatabaseError(f"Unable to create {TABLE}", operation="create_table") from e

    def _load(self) -> None:
        rows = self._db.execute(f"SELECT data FROM {TABLE} ORDER BY name").fetchall()
        for row in rows:
            job = Job.model_validate_json(row[0])
            self._jobs[job.name] = job
        self.log.debug("jobs_loaded", count=len(self._jobs))

    def _persist(self) -> None:
        if self._db is None:
            return
        try:
            with self._db:
                self._db.execute(f"DELETE FROM {TABLE}")
                self._db.executemany(
                    f"INSERT INTO {TABLE} (name, data) VALUES (?, ?)",
                    [(job.name, job.model_dump_json()) for job in self._jobs.values()],
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Unable to store {TABLE}", operation="persist") from e
