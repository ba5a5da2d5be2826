"""CLI entrypoint for hockeyapp-migrator."""
import sys
import argparse
import logging
from pathlib import Path

from .validators import validate_base_url, validate_credential_id_base

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool = False) -> None:
    """Configure logging to stderr."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        stream=sys.stderr
    )


def cmd_version(args):
    """Show version information."""
    print(f"hockeyapp-migrator {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from hockeyapp_migrator.credentials.domains.preferences import set_config_path

    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_config_path(config_path)
    print(f"Config path set to: {config_path}")


def cmd_config_set_inventory(args):
    """Remember the job inventory so scan and migrate need no --jobs-dir."""
    from hockeyapp_migrator.credentials.domains.preferences import set_inventory_paths

    jobs_dir = Path(args.jobs_dir).expanduser().resolve()
    if not jobs_dir.is_dir():
        print(f"Error: Jobs directory does not exist: {jobs_dir}", file=sys.stderr)
        sys.exit(1)

    settings_file = Path(args.settings_file).expanduser().resolve() if args.settings_file else None
    set_inventory_paths(jobs_dir, settings_file)
    print(f"Jobs directory set to: {jobs_dir}")
    if settings_file:
        print(f"Settings file set to: {settings_file}")


def cmd_config_show(args):
    """Show current config file path and inventory."""
    from hockeyapp_migrator.credentials.domains.config_loader import default_config_path
    from hockeyapp_migrator.credentials.domains.preferences import get_config_path, get_inventory_paths

    config_path = get_config_path()

    if config_path:
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found)")

    inventory = get_inventory_paths()
    if inventory:
        jobs_dir, settings_file = inventory
        print(f"Jobs directory: {jobs_dir}")
        print(f"Settings file: {settings_file}")
    else:
        print("Inventory: from config file")


def cmd_config_clear(args):
    """Clear config path preference, and the inventory preference with --inventory."""
    from hockeyapp_migrator.credentials.domains.config_loader import default_config_path
    from hockeyapp_migrator.credentials.domains.preferences import clear_config_path, clear_inventory_paths

    clear_config_path()
    print(f"Config path preference cleared. Will use default: {default_config_path()}")
    if args.inventory:
        clear_inventory_paths()
        print("Inventory preference cleared. Will use inventory from config file")


def _inventory_paths(args, config=None):
    """
    Resolve the jobs directory and settings file.

    Priority order:
    1. --jobs-dir / --settings-file
    2. Inventory preference
    3. inventory section of the config file (loaded if not given)
    """
    from hockeyapp_migrator.credentials.domains.config_loader import load_config
    from hockeyapp_migrator.credentials.domains.models import SETTINGS_FILE_NAME
    from hockeyapp_migrator.credentials.domains.preferences import get_inventory_paths

    if args.jobs_dir:
        jobs_dir = Path(args.jobs_dir)
        settings_file = Path(args.settings_file) if args.settings_file else jobs_dir.parent / SETTINGS_FILE_NAME
        return jobs_dir, settings_file

    preferred = get_inventory_paths()
    if preferred:
        jobs_dir, settings_file = preferred
    else:
        inventory = (config or load_config())['inventory']
        jobs_dir, settings_file = Path(inventory['jobs_dir']), Path(inventory['settings_file'])

    if args.settings_file:
        settings_file = Path(args.settings_file)
    return jobs_dir, settings_file


def cmd_migrate(args):
    """Move plaintext HockeyApp tokens from every job into GCP Secret Manager."""
    from hockeyapp_migrator.credentials.domains.config_loader import load_config
    from hockeyapp_migrator.credentials.domains.gcp_client import GCPSecretStore
    from hockeyapp_migrator.credentials.workflows.fleet_runner import FleetMigrationRunner
    from hockeyapp_migrator.credentials.workflows.gateway import CredentialStoreGateway
    from hockeyapp_migrator.credentials.workflows.job_migrator import JobCredentialMigrator
    from hockeyapp_migrator.jobs.yaml_inventory import GlobalSettings, JobInventory

    config = load_config()
    migration = config['migration']
    validate_credential_id_base(migration['credential_id_base'])
    validate_base_url(migration['default_base_url'])

    jobs_dir, settings_file = _inventory_paths(args, config)
    inventory = JobInventory(jobs_dir)
    settings = GlobalSettings.load(settings_file)
    # The configured endpoint is only a fallback; the settings file keeps its own value
    default_base_url = settings.default_base_url or migration['default_base_url']

    store = GCPSecretStore.from_config(config, project_id=args.project_id)
    gateway = CredentialStoreGateway(store, migration['credential_id_base']) if store.is_available() else None
    if gateway is None:
        logger.warning("No GCP project configured; nothing to migrate to")

    migrator = JobCredentialMigrator(gateway, default_base_url) if gateway else None
    report = FleetMigrationRunner(inventory, settings, gateway, migrator,
                                  default_base_url=default_base_url).run_on_startup()

    for name, outcome in report.outcomes.items():
        print(f"{name}: {outcome}")
    if report.global_outcome is not None:
        print(f"global settings: {report.global_outcome}")
    print(
        f"Migrated {report.migrated_applications} application(s) in {len(report.outcomes)} job(s); "
        f"{len(report.failed_jobs)} job(s) failed"
    )


def cmd_scan(args):
    """List jobs that still hold plaintext HockeyApp tokens."""
    from hockeyapp_migrator.jobs.yaml_inventory import GlobalSettings, JobInventory

    jobs_dir, settings_file = _inventory_paths(args)

    pending = 0
    for job in JobInventory(jobs_dir).enumerate_jobs():
        recorder = job.get_configured_publisher()
        if recorder is None or not recorder.pending_applications:
            continue
        pending += 1
        print(f"{job.full_name}: {len(recorder.pending_applications)} plaintext token(s)")

    if GlobalSettings.load(settings_file).default_token:
        pending += 1
        print("global settings: plaintext default token")

    if pending:
        print(f"{pending} location(s) still hold plaintext tokens")
    else:
        print("No plaintext tokens found")


def _add_inventory_arguments(parser):
    parser.add_argument(
        "--jobs-dir",
        help="Directory holding job YAML files (defaults to the inventory preference, then inventory.jobs_dir from config)"
    )
    parser.add_argument(
        "--settings-file",
        help="Plugin settings YAML file (defaults to hockeyapp.yml beside the jobs directory)"
    )


def main():
    """Main CLI entrypoint.

    Exit codes:
        0 - Success (including runs where individual jobs failed to migrate)
        1 - Runtime errors (configuration, unreadable inventory, etc.)
        2 - Usage errors (invalid arguments)
    """
    parser = argparse.ArgumentParser(
        prog="hockeyapp-migrate",
        description="Move plaintext HockeyApp API tokens from CI job configuration into GCP Secret Manager",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (configuration, unreadable inventory, etc.)
  2 - Usage error (invalid arguments)

Environment variables:
  GCP_PROJECT - GCP project ID (overrides config file)

Configuration:
  Default location: ~/.config/hockeyapp-migrator/config.yml
  Custom path: Set with 'hockeyapp-migrate config set-path <path>'
  Jobs directory: Set with 'hockeyapp-migrate config set-inventory <dir>'
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress at INFO level")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("version", help="Show version information")

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage hockeyapp-migrator configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    config_set_path_parser = config_subparsers.add_parser("set-path", help="Set config file path")
    config_set_path_parser.add_argument("path", help="Path to config file")
    config_set_inventory_parser = config_subparsers.add_parser(
        "set-inventory",
        help="Remember the jobs directory used by scan and migrate"
    )
    config_set_inventory_parser.add_argument("jobs_dir", help="Directory holding job YAML files")
    config_set_inventory_parser.add_argument(
        "--settings-file",
        help="Plugin settings YAML file (defaults to hockeyapp.yml beside the jobs directory)"
    )
    config_subparsers.add_parser("show", help="Show current config path and inventory")
    config_clear_parser = config_subparsers.add_parser("clear", help="Clear config path preference")
    config_clear_parser.add_argument(
        "--inventory", action="store_true", help="Also clear the inventory preference"
    )

    migrate_parser = subparsers.add_parser(
        "migrate",
        help="Migrate plaintext tokens into the secret store",
        description="""
Scan every job, move each plaintext HockeyApp API token into GCP Secret
Manager and replace it with a credential id. Tokens already stored under the
same endpoint are reused. Jobs that fail keep their plaintext token and are
retried on the next run.
        """
    )
    _add_inventory_arguments(migrate_parser)
    migrate_parser.add_argument(
        "--project-id",
        help="GCP project ID (auto-detected from GCP_PROJECT env var or config file if not provided)"
    )

    scan_parser = subparsers.add_parser(
        "scan",
        help="List jobs still holding plaintext tokens",
        description="Report plaintext tokens without touching the secret store"
    )
    _add_inventory_arguments(scan_parser)

    args = parser.parse_args()
    _configure_logging(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "config":
            if args.config_command == "set-path":
                cmd_config_set_path(args)
            elif args.config_command == "set-inventory":
                cmd_config_set_inventory(args)
            elif args.config_command == "show":
                cmd_config_show(args)
            elif args.config_command == "clear":
                cmd_config_clear(args)
            else:
                config_parser.print_help()
                sys.exit(2)
        elif args.command == "migrate":
            cmd_migrate(args)
        elif args.command == "scan":
            cmd_scan(args)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
