"""YAML-backed job inventory and plugin settings.

Each job is one YAML document below a jobs directory; its HockeyApp
publisher lives under ``publishers.hockeyapp``. Plugin-wide defaults live in
a separate settings document. Unknown keys are preserved on save.
"""
import copy
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml

from ..credentials.domains.errors import ChangeTrackingError, PersistenceFailure
from ..credentials.domains.models import RecorderConfiguration, fix_empty_and_trim

logger = logging.getLogger(__name__)

PUBLISHER_KEY = "hockeyapp"
JOB_SUFFIXES = (".yml", ".yaml")


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    return data or {}


def _write_yaml(path: Path, data: Dict[str, Any]) -> None:
    """Write YAML atomically so a failed save leaves the previous file intact."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.replace(tmp_name, path)
    except OSError as e:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceFailure(f"Failed to write {path}: {e}")


class YamlJob:
    """A CI job stored as a YAML document."""

    def __init__(self, path: Path, full_name: str, data: Dict[str, Any]):
        self.path = path
        self.full_name = full_name
        self._data = data
        publisher = (data.get("publishers") or {}).get(PUBLISHER_KEY)
        self._publisher: Optional[RecorderConfiguration] = (
            RecorderConfiguration.from_dict(publisher) if publisher is not None else None
        )

    def __repr__(self) -> str:
        return f"YamlJob({self.full_name!r})"

    def get_configured_publisher(self) -> Optional[RecorderConfiguration]:
        """The job's HockeyApp configuration, or None when the job does not publish to HockeyApp."""
        return self._publisher

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self._data)
        if self._publisher is not None:
            publishers = data.get("publishers") or {}
            publishers[PUBLISHER_KEY] = self._publisher.to_dict()
            data["publishers"] = publishers
        return data

    def save(self) -> None:
        """
        Persist the job.

        Raises:
            PersistenceFailure: If the file cannot be written
        """
        _write_yaml(self.path, self.to_dict())
        logger.debug(f"Saved job {self.full_name} to {self.path}")


class ChangeContext:
    """Scoped change tracking for one job.

    Aborting without a prior commit restores the publisher configuration as
    it was when tracking began. Both commit() and abort() release the job.
    """

    def __init__(self, inventory: "JobInventory", job: YamlJob):
        self._inventory = inventory
        self.job = job
        self._snapshot = copy.deepcopy(job._publisher)
        self.committed = False
        self.released = False

    def commit(self) -> None:
        if self.released:
            return
        self.committed = True
        self._release()

    def abort(self) -> None:
        if self.released:
            return
        if not self.committed:
            self.job._publisher = self._snapshot
            logger.debug(f"Discarded uncommitted changes to job {self.job.full_name}")
        self._release()

    def _release(self) -> None:
        self.released = True
        self._inventory._tracked.discard(self.job.full_name)

    def __enter__(self) -> "ChangeContext":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.abort()


class JobInventory:
    """All jobs found under a jobs directory."""

    def __init__(self, jobs_dir):
        self.jobs_dir = Path(jobs_dir)
        self._tracked: Set[str] = set()

    def _job_files(self) -> List[Path]:
        if not self.jobs_dir.is_dir():
            logger.warning(f"Jobs directory not found: {self.jobs_dir}")
            return []
        return sorted(p for p in self.jobs_dir.rglob("*") if p.is_file() and p.suffix in JOB_SUFFIXES)

    def load_job(self, path: Path) -> YamlJob:
        data = _read_yaml(path)
        if not isinstance(data, dict):
            raise ValueError(f"Job file {path} does not contain a mapping")
        relative = path.relative_to(self.jobs_dir).with_suffix("")
        full_name = data.get("name") or relative.as_posix()
        return YamlJob(path, full_name, data)

    def enumerate_jobs(self) -> List[YamlJob]:
        """Load every job. Unreadable job files are logged and skipped."""
        jobs = []
        for path in self._job_files():
            try:
                jobs.append(self.load_job(path))
            except (OSError, yaml.YAMLError, ValueError) as e:
                logger.error(f"Unable to load job from {path}: {e}")
        return jobs

    def begin_change_tracking(self, job: YamlJob) -> ChangeContext:
        """
        Open a change context on a job.

        Raises:
            ChangeTrackingError: If the job already has an open context
        """
        if job.full_name in self._tracked:
            raise ChangeTrackingError(f"Job {job.full_name} already has an open change context")
        self._tracked.add(job.full_name)
        return ChangeContext(self, job)


class GlobalSettings:
    """Plugin-wide HockeyApp defaults."""

    _KNOWN = ("default_token", "default_base_url", "credential_id", "migration_completed_at")

    def __init__(self, path: Path, data: Optional[Dict[str, Any]] = None):
        self.path = Path(path)
        data = dict(data or {})
        self.default_token: Optional[str] = fix_empty_and_trim(data.pop("default_token", None))
        self.default_base_url: Optional[str] = fix_empty_and_trim(data.pop("default_base_url", None))
        self.credential_id: Optional[str] = fix_empty_and_trim(data.pop("credential_id", None))
        self.migration_completed_at: Optional[str] = data.pop("migration_completed_at", None)
        self._extra = data

    @classmethod
    def load(cls, path) -> "GlobalSettings":
        """Load settings; a missing file yields empty settings."""
        path = Path(path)
        if not path.exists():
            logger.debug(f"No settings file at {path}, using empty settings")
            return cls(path)
        data = _read_yaml(path)
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {path} does not contain a mapping")
        return cls(path, data)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self._extra)
        for key in self._KNOWN:
            data[key] = getattr(self, key)
        return data

    def save(self) -> None:
        _write_yaml(self.path, self.to_dict())
        logger.debug(f"Saved HockeyApp settings to {self.path}")
