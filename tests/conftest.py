"""Shared fixtures: an in-memory secret store and job builders."""
from typing import List, Optional

import pytest
import yaml

from hockeyapp_migrator.credentials.domains.errors import StoreWriteFailure
from hockeyapp_migrator.credentials.domains.models import (
    ApplicationConfig,
    DomainSpecification,
    RecorderConfiguration,
    SecretRecord,
)
from hockeyapp_migrator.credentials.domains.store import SecretStore
from hockeyapp_migrator.credentials.workflows.gateway import CredentialStoreGateway


class FakeSecretStore(SecretStore):
    """In-memory secret store. Writes of tokens listed in fail_on raise StoreWriteFailure."""

    def __init__(self, domains_modifiable: bool = True, available: bool = True):
        self.records: List[SecretRecord] = []
        self.custom_domains: List[DomainSpecification] = []
        self.domains_modifiable = domains_modifiable
        self.available = available
        self.fail_on = set()

    def is_available(self) -> bool:
        return self.available

    def lookup(self, scope_context, domain_requirement=None):
        if domain_requirement is None:
            return list(self.records)
        return [r for r in self.records if r.domain is None or r.domain.matches(domain_requirement)]

    def reveal(self, record):
        return record.value

    def domains(self):
        return list(self.custom_domains)

    def is_domains_modifiable(self):
        return self.domains_modifiable

    def add_credentials(self, domain, record):
        if record.value in self.fail_on:
            raise StoreWriteFailure(f"Refusing to store {record.id}")
        record.domain = domain
        self.records.append(record)

    def add_domain(self, domain, record):
        if record.value in self.fail_on:
            raise StoreWriteFailure(f"Refusing to create domain {domain.name}")
        self.custom_domains.append(domain)
        self.add_credentials(domain, record)

    def ids(self) -> List[str]:
        return [r.id for r in self.records]

    def seed(self, credential_id: str, value: str, domain: Optional[DomainSpecification] = None) -> SecretRecord:
        record = SecretRecord(id=credential_id, value=value, domain=domain)
        if domain is not None and domain not in self.custom_domains:
            self.custom_domains.append(domain)
        self.records.append(record)
        return record


class FakeJob:
    """Minimal job exposing the publisher lookup used by the migrator."""

    def __init__(self, full_name: str, publisher: Optional[RecorderConfiguration]):
        self.full_name = full_name
        self.publisher = publisher

    def get_configured_publisher(self):
        return self.publisher


@pytest.fixture
def store():
    return FakeSecretStore()


@pytest.fixture
def gateway(store):
    return CredentialStoreGateway(store)


def make_recorder(*tokens, base_url=None) -> RecorderConfiguration:
    """Build a recorder with one application per token."""
    return RecorderConfiguration(
        applications=[ApplicationConfig(api_token=token) for token in tokens],
        base_url=base_url,
    )


@pytest.fixture
def jobs_dir(tmp_path):
    path = tmp_path / "jobs"
    path.mkdir()
    return path


@pytest.fixture
def write_job(jobs_dir):
    """Write a job YAML file and return its path."""

    def _write(name, applications=None, base_url=None, extra=None, publisher=True):
        data = dict(extra or {})
        if publisher:
            hockeyapp = {"applications": applications or []}
            if base_url is not None:
                hockeyapp["base_url"] = base_url
            data.setdefault("publishers", {})["hockeyapp"] = hockeyapp
        path = jobs_dir / f"{name}.yml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, sort_keys=False))
        return path

    return _write


def read_yaml(path):
    return yaml.safe_load(path.read_text())
