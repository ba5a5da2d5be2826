"""GCP Secret Manager backed secret store."""
import os
import logging
from typing import Any, Dict, Iterator, List, Optional

from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import secretmanager

from .config_loader import resolve_project_id
from .errors import StoreUnavailable, StoreWriteFailure
from .models import DomainSpecification, SecretRecord
from .store import SecretStore

logger = logging.getLogger(__name__)

MANAGED_BY_LABEL = "managed-by"
MANAGED_BY_VALUE = "hockeyapp-migrator"

# Annotation keys may only hold alphanumerics, dashes, underscores and dots
DOMAIN_NAME_ANNOTATION = "hockeyapp-domain-name"
DOMAIN_HOSTNAME_ANNOTATION = "hockeyapp-domain-hostname"
DOMAIN_SCHEME_ANNOTATION = "hockeyapp-domain-scheme"
DOMAIN_DESCRIPTION_ANNOTATION = "hockeyapp-domain-description"
DESCRIPTION_ANNOTATION = "hockeyapp-description"


class GCPSecretStore(SecretStore):
    """Secret store on GCP Secret Manager.

    Domains have no native counterpart in Secret Manager, so a secret's domain
    is kept in its annotations and the domain list is derived from them.
    """

    def __init__(self, project_id: Optional[str] = None):
        self.project_id = project_id
        self._client = None

    @classmethod
    def from_config(cls, config: Dict[str, Any], project_id: Optional[str] = None) -> "GCPSecretStore":
        """Build a store from a loaded config, exporting the service account path for the client."""
        auth = config.get('authentication') or {}
        if 'service_account_path' in auth:
            os.environ['GOOGLE_APPLICATION_CREDENTIALS'] = auth['service_account_path']
            logger.info(f"Set GOOGLE_APPLICATION_CREDENTIALS from config: {auth['service_account_path']}")
        return cls(project_id or resolve_project_id(config))

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    @property
    def parent(self) -> str:
        return f"projects/{self.project_id}"

    def is_available(self) -> bool:
        return bool(self.project_id)

    def _list_records(self) -> Iterator[SecretRecord]:
        if not self.is_available():
            raise StoreUnavailable("No GCP project configured for the secret store")
        try:
            for secret in self.client.list_secrets(request={"parent": self.parent}):
                yield self._to_record(secret)
        except auth_exceptions.GoogleAuthError as e:
            raise StoreUnavailable(f"Not authenticated to Secret Manager: {e}", context=self.parent)
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Failed to list secrets in {self.parent}: {e}")

    @staticmethod
    def _to_record(secret) -> SecretRecord:
        annotations = dict(secret.annotations or {})
        domain = None
        if DOMAIN_HOSTNAME_ANNOTATION in annotations:
            domain = DomainSpecification(
                name=annotations.get(DOMAIN_NAME_ANNOTATION, annotations[DOMAIN_HOSTNAME_ANNOTATION]),
                hostname=annotations[DOMAIN_HOSTNAME_ANNOTATION],
                scheme=annotations.get(DOMAIN_SCHEME_ANNOTATION, "https"),
                description=annotations.get(DOMAIN_DESCRIPTION_ANNOTATION),
            )
        return SecretRecord(
            id=secret.name.rsplit("/", 1)[-1],
            domain=domain,
            description=annotations.get(DESCRIPTION_ANNOTATION),
        )

    def lookup(self, scope_context: Optional[str],
               domain_requirement: Optional[str] = None) -> List[SecretRecord]:
        # Secret Manager has no per-job scoping: every secret in the project is visible
        records = list(self._list_records())
        if domain_requirement is None:
            return records
        return [r for r in records if r.domain is None or r.domain.matches(domain_requirement)]

    def reveal(self, record: SecretRecord) -> Optional[str]:
        if record.value is not None:
            return record.value
        try:
            name = f"{self.parent}/secrets/{record.id}/versions/latest"
            response = self.client.access_secret_version(request={"name": name})
            return response.payload.data.decode("UTF-8")
        except (gcp_exceptions.NotFound, gcp_exceptions.FailedPrecondition) as e:
            # No enabled version: nothing to compare against
            logger.warning(f"Secret {record.id} has no readable version: {e}")
            return None
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Failed to read secret {record.id}: {e}", context=self.parent)
        except auth_exceptions.GoogleAuthError as e:
            raise StoreUnavailable(f"Not authenticated to Secret Manager: {e}", context=self.parent)

    def domains(self) -> List[DomainSpecification]:
        found: List[DomainSpecification] = []
        for record in self._list_records():
            if record.domain is not None and record.domain not in found:
                found.append(record.domain)
        return found

    def is_domains_modifiable(self) -> bool:
        return True

    def add_credentials(self, domain: Optional[DomainSpecification], record: SecretRecord) -> None:
        annotations: Dict[str, str] = {}
        if record.description:
            annotations[DESCRIPTION_ANNOTATION] = record.description
        if domain is not None:
            annotations[DOMAIN_NAME_ANNOTATION] = domain.name
            annotations[DOMAIN_HOSTNAME_ANNOTATION] = domain.hostname
            annotations[DOMAIN_SCHEME_ANNOTATION] = domain.scheme
            if domain.description:
                annotations[DOMAIN_DESCRIPTION_ANNOTATION] = domain.description

        try:
            created = self.client.create_secret(
                request={
                    "parent": self.parent,
                    "secret_id": record.id,
                    "secret": {
                        "replication": {"automatic": {}},
                        "labels": {MANAGED_BY_LABEL: MANAGED_BY_VALUE},
                        "annotations": annotations,
                    },
                }
            )
            self.client.add_secret_version(
                request={"parent": created.name, "payload": {"data": (record.value or "").encode("UTF-8")}}
            )
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreWriteFailure(f"Failed to create secret {record.id}: {e}", context=self.parent)
        except auth_exceptions.GoogleAuthError as e:
            raise StoreUnavailable(f"Not authenticated to Secret Manager: {e}", context=self.parent)

        logger.info(f"Created secret {record.id} in {self.parent}")

    def add_domain(self, domain: DomainSpecification, record: SecretRecord) -> None:
        # The domain comes into existence with its first annotated secret
        self.add_credentials(domain, record)
