"""Store-or-reuse of migrated API tokens against a secret store."""
import logging
from typing import Optional

from ..domains.errors import StoreUnavailable
from ..domains.id_generator import DEFAULT_CREDENTIAL_ID_BASE, generate_credential_id
from ..domains.models import DomainSpecification, SecretRecord
from ..domains.store import SecretStore

logger = logging.getLogger(__name__)


class CredentialStoreGateway:
    """Moves plaintext tokens into the secret store, reusing existing secrets when possible."""

    def __init__(self, store: Optional[SecretStore],
                 credential_id_base: str = DEFAULT_CREDENTIAL_ID_BASE):
        self.store = store
        self.credential_id_base = credential_id_base

    def _require_store(self) -> SecretStore:
        if self.store is None or not self.store.is_available():
            raise StoreUnavailable("No writable secret store is reachable")
        return self.store

    def find_existing(self, scope_context: Optional[str], base_url: str, api_token: str) -> Optional[str]:
        """Return the id of a previously migrated secret holding api_token for base_url."""
        store = self._require_store()
        for record in store.lookup(scope_context, base_url):
            if not record.id.startswith(self.credential_id_base):
                continue
            if store.reveal(record) == api_token:
                return record.id
        return None

    def store_or_reuse(self, scope_context: Optional[str], base_url: str, api_token: str) -> str:
        """
        Store api_token as a secret for base_url, or reuse an identical one.

        Args:
            scope_context: Full name of the job being migrated, or None for global settings
            base_url: HockeyApp endpoint, used as the secret's security domain
            api_token: Plaintext token to move into the store

        Returns:
            Credential id referencing the secret

        Raises:
            StoreUnavailable: If no writable store is reachable
            StoreWriteFailure: If creating the secret or its domain fails
        """
        store = self._require_store()

        existing_id = self.find_existing(scope_context, base_url, api_token)
        if existing_id is not None:
            logger.debug(f"Reusing credential {existing_id} for {base_url}")
            return existing_id

        existing_ids = {record.id for record in store.lookup(scope_context)}
        credential_id = generate_credential_id(existing_ids, self.credential_id_base)
        record = SecretRecord(
            id=credential_id,
            value=api_token,
            description=f"Migrated HockeyApp API token for {base_url}",
        )

        for domain in store.domains():
            if domain.matches(base_url):
                record.domain = domain
                store.add_credentials(domain, record)
                logger.info(f"Stored credential {credential_id} in existing domain {domain.name}")
                return credential_id

        if store.is_domains_modifiable():
            domain = DomainSpecification.for_base_url(base_url)
            record.domain = domain
            store.add_domain(domain, record)
            logger.info(f"Stored credential {credential_id} in new domain {domain.name}")
        else:
            store.add_credentials(None, record)
            logger.info(f"Stored credential {credential_id} in global scope")

        return credential_id
