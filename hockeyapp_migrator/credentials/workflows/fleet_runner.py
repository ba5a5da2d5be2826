"""Startup migration of every job in the inventory."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from ..domains.errors import ChangeTrackingError, MigrationError, PersistenceFailure
from ..domains.models import DEFAULT_BASE_URL, MigrationOutcome, OutcomeStatus
from .gateway import CredentialStoreGateway
from .job_migrator import JobCredentialMigrator

logger = logging.getLogger(__name__)


@dataclass
class FleetMigrationReport:
    """Outcomes of one fleet-wide run, keyed by job full name."""
    outcomes: Dict[str, MigrationOutcome] = field(default_factory=dict)
    global_outcome: Optional[MigrationOutcome] = None

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes.values() if outcome.status == status)

    @property
    def migrated_applications(self) -> int:
        return sum(o.count for o in self.outcomes.values() if o.status == OutcomeStatus.MIGRATED)

    @property
    def failed_jobs(self):
        return [name for name, o in self.outcomes.items() if o.status == OutcomeStatus.FAILED]


class FleetMigrationRunner:
    """Runs the credential migration across the whole job inventory.

    Every job is attempted once per run. A job that fails keeps its plaintext
    token on disk and is picked up again on the next run.
    """

    def __init__(self, inventory, settings, gateway: Optional[CredentialStoreGateway],
                 migrator: Optional[JobCredentialMigrator] = None,
                 default_base_url: Optional[str] = None):
        self.inventory = inventory
        self.settings = settings
        self.gateway = gateway
        # Fallback endpoint only; never written back into the plugin settings
        self.default_base_url = default_base_url or DEFAULT_BASE_URL
        if migrator is None and gateway is not None:
            migrator = JobCredentialMigrator(gateway, self.base_url)
        self.migrator = migrator

    @property
    def base_url(self) -> str:
        """Endpoint for tokens without their own base url."""
        return self.settings.default_base_url or self.default_base_url

    def run_on_startup(self) -> FleetMigrationReport:
        report = FleetMigrationReport()

        if self.gateway is None:
            logger.info("No secret store available, skipping credential migration")
            return report

        for job in self.inventory.enumerate_jobs():
            if job.get_configured_publisher() is None:
                continue
            report.outcomes[job.full_name] = self._migrate_job(job)

        report.global_outcome = self._migrate_global_settings()

        self.settings.migration_completed_at = datetime.now(timezone.utc).isoformat()
        try:
            self.settings.save()
        except (OSError, PersistenceFailure):
            logger.exception("Unable to save global HockeyApp settings")

        logger.info(
            f"Credential migration finished: {report.count(OutcomeStatus.MIGRATED)} job(s) migrated, "
            f"{report.count(OutcomeStatus.SKIPPED)} skipped, {report.count(OutcomeStatus.FAILED)} failed"
        )
        return report

    def _migrate_job(self, job) -> MigrationOutcome:
        try:
            change = self.inventory.begin_change_tracking(job)
        except ChangeTrackingError as e:
            logger.error(f"Skipping job {job.full_name}: {e}")
            return MigrationOutcome.failed(e)

        try:
            logger.debug(f"Attempting to migrate credentials for job: {job.full_name}")
            outcome = self.migrator.migrate(job)
            if outcome.status == OutcomeStatus.MIGRATED:
                job.save()
                change.commit()
                logger.debug(f"Successfully migrated credentials for job: {job.full_name}")
        except (OSError, PersistenceFailure) as e:
            logger.exception(f"Unable to save configuration for job: {job.full_name}")
            outcome = MigrationOutcome.failed(e)
        except Exception as e:
            logger.exception(f"Unexpected error migrating job: {job.full_name}")
            outcome = MigrationOutcome.failed(e)
        finally:
            change.abort()

        logger.info(f"Job {job.full_name}: {outcome}")
        return outcome

    def _migrate_global_settings(self) -> MigrationOutcome:
        token = self.settings.default_token
        if not token:
            return MigrationOutcome.skipped("no plaintext tokens")

        try:
            credential_id = self.gateway.store_or_reuse(None, self.base_url, token)
        except MigrationError as e:
            logger.error(f"Unable to migrate the default HockeyApp token: {e}")
            return MigrationOutcome.failed(e)
        except Exception as e:
            logger.exception("Unexpected error migrating the default HockeyApp token")
            return MigrationOutcome.failed(e)

        self.settings.credential_id = credential_id
        self.settings.default_token = None
        logger.info(f"Default HockeyApp token migrated to credential {credential_id}")
        return MigrationOutcome.migrated(1)
