"""Domain models for HockeyApp credential migration."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

DEFAULT_BASE_URL = "https://rink.hockeyapp.net"
DEFAULT_SCHEME = "https"
# Plugin-wide settings live next to the jobs directory by default
SETTINGS_FILE_NAME = "hockeyapp.yml"


def fix_empty_and_trim(value: Optional[str]) -> Optional[str]:
    """Strip a string and turn empty results into None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _split_base_url(base_url: str):
    # Bare hosts such as "host.com" have no scheme; parse them as a netloc
    if "://" not in base_url:
        base_url = f"//{base_url}"
    return urlsplit(base_url)


def url_netloc(base_url: str) -> str:
    """Return host[:port] of a base url."""
    return _split_base_url(base_url).netloc


def url_hostname(base_url: str) -> str:
    """Return the lower-cased hostname of a base url, without port."""
    return _split_base_url(base_url).hostname or ""


@dataclass
class DomainSpecification:
    """Hostname + scheme predicate scoping which secrets apply to an endpoint."""
    name: str
    hostname: str
    scheme: str = DEFAULT_SCHEME
    description: Optional[str] = None

    @classmethod
    def for_base_url(cls, base_url: str) -> "DomainSpecification":
        netloc = url_netloc(base_url)
        return cls(
            name=netloc,
            hostname=netloc,
            scheme=DEFAULT_SCHEME,
            description=f"Migrated HockeyApp credentials for {base_url}",
        )

    def matches(self, base_url: str) -> bool:
        """Check whether this domain covers the host of base_url."""
        return url_hostname(self.hostname) == url_hostname(base_url)


@dataclass
class SecretRecord:
    """An entry in the secret store. value may be None until revealed."""
    id: str
    domain: Optional[DomainSpecification] = None
    value: Optional[str] = field(default=None, repr=False)
    description: Optional[str] = None

    @property
    def scope(self) -> str:
        return "global" if self.domain is None else "domain"


@dataclass
class OldVersionHolder:
    """Retention settings for old versions on HockeyApp."""
    number_old_versions: Optional[str] = None
    sort_old_versions: Optional[str] = "version"
    strategy_old_versions: Optional[str] = "purge"

    def __post_init__(self):
        self.number_old_versions = fix_empty_and_trim(self.number_old_versions)
        self.sort_old_versions = fix_empty_and_trim(self.sort_old_versions)
        self.strategy_old_versions = fix_empty_and_trim(self.strategy_old_versions)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["OldVersionHolder"]:
        if data is None:
            return None
        return cls(
            number_old_versions=data.get("number_old_versions"),
            sort_old_versions=data.get("sort_old_versions", "version"),
            strategy_old_versions=data.get("strategy_old_versions", "purge"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number_old_versions": self.number_old_versions,
            "sort_old_versions": self.sort_old_versions,
            "strategy_old_versions": self.strategy_old_versions,
        }


# Upload fields carried through migration unchanged
_UPLOAD_FIELDS = (
    "file_path", "dsym_path", "libs_path", "tags", "teams",
    "mandatory", "notify_team", "download_allowed", "release_notes",
)


@dataclass
class ApplicationConfig:
    """One HockeyApp upload target configured on a job.

    Before migration api_token holds the plaintext token and credential_id is
    None. After migration api_token is None and credential_id references the
    secret.
    """
    base_url: Optional[str] = None
    api_token: Optional[str] = field(default=None, repr=False)
    credential_id: Optional[str] = None
    file_path: Optional[str] = None
    dsym_path: Optional[str] = None
    libs_path: Optional[str] = None
    tags: Optional[str] = None
    teams: Optional[str] = None
    mandatory: bool = False
    notify_team: bool = True
    download_allowed: bool = True
    release_notes: Optional[Dict[str, Any]] = None
    old_version_holder: Optional[OldVersionHolder] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self.base_url = fix_empty_and_trim(self.base_url)
        self.api_token = fix_empty_and_trim(self.api_token)
        self.credential_id = fix_empty_and_trim(self.credential_id)

    @property
    def needs_migration(self) -> bool:
        return self.api_token is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApplicationConfig":
        known = {"base_url", "api_token", "credential_id", "old_version_holder", *_UPLOAD_FIELDS}
        kwargs = {key: data[key] for key in _UPLOAD_FIELDS if key in data}
        return cls(
            base_url=data.get("base_url"),
            api_token=data.get("api_token"),
            credential_id=data.get("credential_id"),
            old_version_holder=OldVersionHolder.from_dict(data.get("old_version_holder")),
            extra={key: value for key, value in data.items() if key not in known},
            **kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        if self.base_url is not None:
            data["base_url"] = self.base_url
        data["api_token"] = self.api_token
        data["credential_id"] = self.credential_id
        for key in _UPLOAD_FIELDS:
            data[key] = getattr(self, key)
        if self.old_version_holder is not None:
            data["old_version_holder"] = self.old_version_holder.to_dict()
        return data


@dataclass
class RecorderConfiguration:
    """HockeyApp publisher configuration of a single job."""
    applications: List[ApplicationConfig] = field(default_factory=list)
    base_url: Optional[str] = None
    debug_mode: bool = False
    fail_gracefully: bool = False
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self.base_url = fix_empty_and_trim(self.base_url)

    def effective_base_url(self, application: ApplicationConfig,
                           default_base_url: Optional[str] = None) -> str:
        """Resolve the endpoint for an application, falling back to recorder and plugin defaults."""
        return application.base_url or self.base_url or default_base_url or DEFAULT_BASE_URL

    @property
    def pending_applications(self) -> List[ApplicationConfig]:
        return [app for app in self.applications if app.needs_migration]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecorderConfiguration":
        known = {"applications", "base_url", "debug_mode", "fail_gracefully"}
        return cls(
            applications=[ApplicationConfig.from_dict(app) for app in data.get("applications") or []],
            base_url=data.get("base_url"),
            debug_mode=bool(data.get("debug_mode", False)),
            fail_gracefully=bool(data.get("fail_gracefully", False)),
            extra={key: value for key, value in data.items() if key not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        if self.base_url is not None:
            data["base_url"] = self.base_url
        data["debug_mode"] = self.debug_mode
        data["fail_gracefully"] = self.fail_gracefully
        data["applications"] = [app.to_dict() for app in self.applications]
        return data


class OutcomeStatus(str, Enum):
    MIGRATED = "migrated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class MigrationOutcome:
    """Result of migrating one job. Used for logging only."""
    status: OutcomeStatus
    count: int = 0
    reason: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def migrated(cls, count: int) -> "MigrationOutcome":
        return cls(OutcomeStatus.MIGRATED, count=count)

    @classmethod
    def skipped(cls, reason: str) -> "MigrationOutcome":
        return cls(OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, error: BaseException) -> "MigrationOutcome":
        return cls(OutcomeStatus.FAILED, error=error)

    def __str__(self) -> str:
        if self.status == OutcomeStatus.MIGRATED:
            return f"migrated {self.count} application(s)"
        if self.status == OutcomeStatus.SKIPPED:
            return f"skipped ({self.reason})"
        return f"failed ({self.error})"
