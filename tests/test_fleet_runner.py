"""Tests for FleetMigrationRunner against a YAML inventory."""
import pytest
from google.auth.exceptions import DefaultCredentialsError

from hockeyapp_migrator.credentials.domains.errors import StoreUnavailable
from hockeyapp_migrator.credentials.domains.gcp_client import GCPSecretStore
from hockeyapp_migrator.credentials.domains.id_generator import DEFAULT_CREDENTIAL_ID_BASE as BASE
from hockeyapp_migrator.credentials.domains.models import MigrationOutcome, OutcomeStatus
from hockeyapp_migrator.credentials.workflows.gateway import CredentialStoreGateway
from hockeyapp_migrator.credentials.workflows.fleet_runner import FleetMigrationRunner
from hockeyapp_migrator.credentials.workflows.job_migrator import JobCredentialMigrator
from hockeyapp_migrator.jobs.yaml_inventory import GlobalSettings, JobInventory, YamlJob

from conftest import read_yaml


@pytest.fixture
def settings_file(tmp_path):
    return tmp_path / "hockeyapp.yml"


@pytest.fixture
def inventory(jobs_dir):
    return JobInventory(jobs_dir)


def make_runner(inventory, settings_file, gateway):
    return FleetMigrationRunner(inventory, GlobalSettings.load(settings_file), gateway)


def app_on_disk(path, index=0):
    return read_yaml(path)["publishers"]["hockeyapp"]["applications"][index]


class TestFleetMigrationRunner:
    """Fleet-wide migration behaviour."""

    def test_no_gateway_means_nothing_happens(self, inventory, settings_file, write_job):
        path = write_job("ios", [{"api_token": "abc123"}])

        report = make_runner(inventory, settings_file, None).run_on_startup()

        assert report.outcomes == {}
        assert app_on_disk(path)["api_token"] == "abc123"
        assert not settings_file.exists()

    def test_migrates_and_persists_job(self, inventory, settings_file, write_job, store, gateway):
        path = write_job("ios", [{"api_token": "abc123"}], base_url="http://fake.url:1234")

        report = make_runner(inventory, settings_file, gateway).run_on_startup()

        assert report.outcomes["ios"].status == OutcomeStatus.MIGRATED
        application = app_on_disk(path)
        assert application["api_token"] is None
        assert application["credential_id"] == BASE
        assert store.ids() == [BASE]
        assert store.records[0].domain.name == "fake.url:1234"
        assert store.records[0].domain.scheme == "https"

    def test_jobs_without_publisher_are_not_reported(self, inventory, settings_file, write_job, gateway):
        write_job("docs", publisher=False, extra={"description": "no uploads"})

        report = make_runner(inventory, settings_file, gateway).run_on_startup()

        assert "docs" not in report.outcomes

    def test_second_run_changes_nothing(self, inventory, settings_file, write_job, store, gateway):
        paths = [
            write_job("ios", [{"api_token": "abc123"}]),
            write_job("android", [{"api_token": "def456"}, {"api_token": "abc123"}]),
        ]
        make_runner(inventory, settings_file, gateway).run_on_startup()
        after_first = [p.read_text() for p in paths]
        ids_after_first = store.ids()

        report = make_runner(JobInventory(inventory.jobs_dir), settings_file, gateway).run_on_startup()

        assert [p.read_text() for p in paths] == after_first
        assert store.ids() == ids_after_first
        assert all(o.status == OutcomeStatus.SKIPPED for o in report.outcomes.values())

    @pytest.mark.parametrize("names", [("a-job", "b-job"), ("b-job", "a-job")])
    def test_same_token_across_jobs_shares_one_secret(self, inventory, settings_file, write_job,
                                                      store, gateway, names):
        first, second = names
        paths = {
            first: write_job(first, [{"api_token": "shared"}], base_url="https://host.com"),
            second: write_job(second, [{"api_token": "shared"}], base_url="https://host.com"),
        }

        make_runner(inventory, settings_file, gateway).run_on_startup()

        assert len(store.records) == 1
        assert app_on_disk(paths[first])["credential_id"] == app_on_disk(paths[second])["credential_id"] == BASE

    def test_save_failure_is_isolated(self, inventory, settings_file, write_job, gateway, monkeypatch):
        path_a = write_job("a", [{"api_token": "token-a"}])
        path_b = write_job("b", [{"api_token": "token-b"}])
        path_c = write_job("c", [{"api_token": "token-c"}])

        original_save = YamlJob.save

        def failing_save(job):
            if job.full_name == "b":
                raise OSError("disk full")
            original_save(job)

        monkeypatch.setattr(YamlJob, "save", failing_save)

        report = make_runner(inventory, settings_file, gateway).run_on_startup()

        assert report.outcomes["a"].status == OutcomeStatus.MIGRATED
        assert report.outcomes["b"].status == OutcomeStatus.FAILED
        assert report.outcomes["c"].status == OutcomeStatus.MIGRATED
        assert report.failed_jobs == ["b"]
        assert app_on_disk(path_a)["credential_id"] is not None
        assert app_on_disk(path_b)["api_token"] == "token-b"
        assert app_on_disk(path_b)["credential_id"] is None
        assert app_on_disk(path_c)["credential_id"] is not None
        assert settings_file.exists()

    def test_save_failure_restores_in_memory_configuration(self, inventory, settings_file, write_job,
                                                           gateway, monkeypatch):
        write_job("b", [{"api_token": "token-b"}])
        jobs = inventory.enumerate_jobs()
        monkeypatch.setattr(inventory, "enumerate_jobs", lambda: jobs)

        def failing_save(job):
            raise OSError("read-only file system")

        monkeypatch.setattr(YamlJob, "save", failing_save)

        make_runner(inventory, settings_file, gateway).run_on_startup()

        application = jobs[0].get_configured_publisher().applications[0]
        assert application.api_token == "token-b"
        assert application.credential_id is None
        assert inventory._tracked == set()

    def test_failed_job_is_retried_on_next_run(self, inventory, settings_file, write_job, store, gateway):
        path = write_job("flaky", [{"api_token": "abc123"}])
        store.fail_on.add("abc123")

        first = make_runner(inventory, settings_file, gateway).run_on_startup()
        assert first.outcomes["flaky"].status == OutcomeStatus.FAILED
        assert app_on_disk(path)["api_token"] == "abc123"
        assert app_on_disk(path)["credential_id"] is None

        store.fail_on.clear()
        second = make_runner(inventory, settings_file, gateway).run_on_startup()

        assert second.outcomes["flaky"].status == OutcomeStatus.MIGRATED
        assert app_on_disk(path)["credential_id"] == BASE

    def test_store_failure_keeps_other_jobs_migrating(self, inventory, settings_file, write_job, store, gateway):
        write_job("a", [{"api_token": "token-a"}])
        path_b = write_job("b", [{"api_token": "token-b"}])
        write_job("c", [{"api_token": "token-c"}])
        store.fail_on.add("token-b")

        report = make_runner(inventory, settings_file, gateway).run_on_startup()

        assert report.count(OutcomeStatus.MIGRATED) == 2
        assert report.count(OutcomeStatus.FAILED) == 1
        assert app_on_disk(path_b)["api_token"] == "token-b"

    def test_unexpected_error_is_isolated(self, inventory, settings_file, write_job, gateway):
        write_job("a", [{"api_token": "token-a"}])
        write_job("b", [{"api_token": "token-b"}])

        class ExplodingMigrator(JobCredentialMigrator):
            def migrate(self, job):
                if job.full_name == "a":
                    raise RuntimeError("boom")
                return super().migrate(job)

        settings = GlobalSettings.load(settings_file)
        runner = FleetMigrationRunner(inventory, settings, gateway, ExplodingMigrator(gateway))

        report = runner.run_on_startup()

        assert report.outcomes["a"].status == OutcomeStatus.FAILED
        assert isinstance(report.outcomes["a"].error, RuntimeError)
        assert report.outcomes["b"].status == OutcomeStatus.MIGRATED

    def test_job_already_under_change_is_skipped(self, inventory, settings_file, write_job, gateway,
                                                 monkeypatch):
        path = write_job("busy", [{"api_token": "abc123"}])
        jobs = inventory.enumerate_jobs()
        monkeypatch.setattr(inventory, "enumerate_jobs", lambda: jobs)
        inventory.begin_change_tracking(jobs[0])

        report = make_runner(inventory, settings_file, gateway).run_on_startup()

        assert report.outcomes["busy"].status == OutcomeStatus.FAILED
        assert app_on_disk(path)["api_token"] == "abc123"


class TestGlobalSettingsMigration:
    """Migration of the plugin-wide default token."""

    def test_default_token_is_migrated(self, inventory, settings_file, store, gateway):
        GlobalSettings(settings_file, {"default_token": "global-tok"}).save()

        report = make_runner(inventory, settings_file, gateway).run_on_startup()

        saved = read_yaml(settings_file)
        assert saved["default_token"] is None
        assert saved["credential_id"] == BASE
        assert saved["migration_completed_at"]
        assert report.global_outcome == MigrationOutcome.migrated(1)
        assert store.records[0].domain.hostname == "rink.hockeyapp.net"

    def test_default_base_url_is_used_for_domain(self, inventory, settings_file, store, gateway):
        GlobalSettings(settings_file, {"default_token": "global-tok",
                                       "default_base_url": "https://hockey.corp"}).save()

        make_runner(inventory, settings_file, gateway).run_on_startup()

        assert store.records[0].domain.hostname == "hockey.corp"

    def test_default_token_failure_keeps_plaintext(self, inventory, settings_file, store, gateway):
        GlobalSettings(settings_file, {"default_token": "global-tok"}).save()
        store.fail_on.add("global-tok")

        report = make_runner(inventory, settings_file, gateway).run_on_startup()

        saved = read_yaml(settings_file)
        assert saved["default_token"] == "global-tok"
        assert saved["credential_id"] is None
        assert saved["migration_completed_at"]
        assert report.global_outcome.status == OutcomeStatus.FAILED

    def test_settings_saved_even_without_default_token(self, inventory, settings_file, gateway):
        report = make_runner(inventory, settings_file, gateway).run_on_startup()

        assert report.global_outcome.status == OutcomeStatus.SKIPPED
        assert read_yaml(settings_file)["migration_completed_at"]

    def test_completion_stamp_does_not_skip_pending_jobs(self, inventory, settings_file, write_job, gateway):
        GlobalSettings(settings_file, {"migration_completed_at": "2020-01-01T00:00:00+00:00"}).save()
        path = write_job("late", [{"api_token": "abc123"}])

        make_runner(inventory, settings_file, gateway).run_on_startup()

        assert app_on_disk(path)["credential_id"] == BASE

    def test_unauthenticated_store_still_saves_settings(self, inventory, settings_file, monkeypatch):
        GlobalSettings(settings_file, {"default_token": "global-tok"}).save()

        def no_credentials(self):
            raise DefaultCredentialsError("no adc")

        monkeypatch.setattr(GCPSecretStore, "client", property(no_credentials))
        gateway = CredentialStoreGateway(GCPSecretStore("my-project"), BASE)

        report = make_runner(inventory, settings_file, gateway).run_on_startup()

        assert report.global_outcome.status == OutcomeStatus.FAILED
        assert isinstance(report.global_outcome.error, StoreUnavailable)
        saved = read_yaml(settings_file)
        assert saved["default_token"] == "global-tok"
        assert saved["credential_id"] is None
        assert saved["migration_completed_at"]

    def test_unexpected_error_on_default_token_still_saves_settings(self, inventory, settings_file, gateway,
                                                                   monkeypatch):
        GlobalSettings(settings_file, {"default_token": "global-tok"}).save()

        def boom(scope, base_url, token):
            raise RuntimeError("boom")

        monkeypatch.setattr(gateway, "store_or_reuse", boom)

        report = make_runner(inventory, settings_file, gateway).run_on_startup()

        assert report.global_outcome.status == OutcomeStatus.FAILED
        assert isinstance(report.global_outcome.error, RuntimeError)
        saved = read_yaml(settings_file)
        assert saved["default_token"] == "global-tok"
        assert saved["migration_completed_at"]

    def test_injected_default_base_url_is_not_persisted(self, inventory, settings_file, write_job,
                                                        store, gateway):
        GlobalSettings(settings_file, {"default_token": "global-tok"}).save()
        write_job("ios", [{"api_token": "abc123"}])
        settings = GlobalSettings.load(settings_file)
        runner = FleetMigrationRunner(inventory, settings, gateway, default_base_url="https://hockey.corp")

        runner.run_on_startup()

        assert [r.domain.hostname for r in store.records] == ["hockey.corp", "hockey.corp"]
        assert read_yaml(settings_file)["default_base_url"] is None

    def test_settings_base_url_wins_over_injected_default(self, inventory, settings_file, store, gateway):
        GlobalSettings(settings_file, {"default_token": "global-tok",
                                       "default_base_url": "https://from.settings"}).save()
        settings = GlobalSettings.load(settings_file)
        runner = FleetMigrationRunner(inventory, settings, gateway, default_base_url="https://hockey.corp")

        runner.run_on_startup()

        assert store.records[0].domain.hostname == "from.settings"
        assert read_yaml(settings_file)["default_base_url"] == "https://from.settings"
