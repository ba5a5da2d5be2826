"""Per-job migration of plaintext HockeyApp tokens."""
import logging
from typing import List, Optional, Tuple

from ..domains.errors import MigrationError
from ..domains.models import ApplicationConfig, DEFAULT_BASE_URL, MigrationOutcome
from .gateway import CredentialStoreGateway

logger = logging.getLogger(__name__)


class JobCredentialMigrator:
    """Migrates every plaintext token configured on one job."""

    def __init__(self, gateway: CredentialStoreGateway, default_base_url: Optional[str] = DEFAULT_BASE_URL):
        self.gateway = gateway
        self.default_base_url = default_base_url

    def migrate(self, job) -> MigrationOutcome:
        """
        Move the job's plaintext tokens into the secret store.

        Args:
            job: Anything exposing full_name and get_configured_publisher()

        Returns:
            migrated(n) when n applications were moved, skipped(...) when
            there was nothing to do, failed(error) when the store rejected a token.
            A failed job's configuration is left exactly as it was.
        """
        recorder = job.get_configured_publisher()
        if recorder is None:
            return MigrationOutcome.skipped("no configuration")

        pending = recorder.pending_applications
        if not pending:
            return MigrationOutcome.skipped("no plaintext tokens")

        staged: List[Tuple[ApplicationConfig, str]] = []
        for application in pending:
            base_url = recorder.effective_base_url(application, self.default_base_url)
            try:
                credential_id = self.gateway.store_or_reuse(job.full_name, base_url, application.api_token)
            except MigrationError as e:
                logger.error(f"Unable to store credential for job {job.full_name} ({base_url}): {e}")
                return MigrationOutcome.failed(e)
            staged.append((application, credential_id))

        for application, credential_id in staged:
            application.credential_id = credential_id
            application.api_token = None

        return MigrationOutcome.migrated(len(staged))
