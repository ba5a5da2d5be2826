"""Configuration loader for hockeyapp-migrator."""
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .id_generator import DEFAULT_CREDENTIAL_ID_BASE
from .models import DEFAULT_BASE_URL, SETTINGS_FILE_NAME
from .preferences import get_config_path, get_inventory_paths

logger = logging.getLogger(__name__)


def default_config_path() -> Path:
    """Default config location under the XDG config directory."""
    return Path.home() / ".config" / "hockeyapp-migrator" / "config.yml"


def _get_config_path() -> str:
    """
    Get config file path using XDG Base Directory standard.

    Priority order:
    1. User preference (stored in ~/.config/hockeyapp-migrator/preferences.json)
    2. Default location: ~/.config/hockeyapp-migrator/config.yml

    Returns:
        Absolute path to config file

    Raises:
        FileNotFoundError: If config file doesn't exist in any location
    """
    config_path = get_config_path()
    if config_path:
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        else:
            logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    raise FileNotFoundError(
        "Configuration file not found. Please set up your config file using one of these methods:\n\n"
        "1. Use the default location:\n"
        f"   mkdir -p {default_config.parent}\n"
        f"   cp /path/to/your/config.yml {default_config}\n\n"
        "2. Point to an existing config file:\n"
        "   hockeyapp-migrate config set-path /path/to/your/config.yml\n"
    )


class ConfigError(Exception):
    """Configuration error exception."""
    pass


def _validate_authentication(config: Dict[str, Any], config_path: str) -> None:
    auth = config['authentication']

    if 'type' not in auth:
        raise ConfigError("Missing 'authentication.type' in config")

    if auth['type'] != 'service_account':
        raise ConfigError(
            f"Unsupported authentication type: {auth['type']}\n"
            f"Only 'service_account' is supported."
        )

    if 'service_account_path' not in auth:
        raise ConfigError(
            "Missing 'authentication.service_account_path' in config\n"
            "Please specify the absolute path to your service account JSON file."
        )

    service_account_path = auth['service_account_path']
    if not os.path.exists(service_account_path):
        raise ConfigError(
            f"Service account file not found at: {service_account_path}\n"
            f"Please ensure the file exists or update the path in {config_path}"
        )

    if not os.path.isfile(service_account_path):
        raise ConfigError(f"Service account path is not a file: {service_account_path}")


def _resolve_inventory(config: Dict[str, Any], config_path: str) -> Dict[str, str]:
    """
    Resolve the job inventory.

    Priority order:
    1. Inventory preference (set with 'hockeyapp-migrate config set-inventory')
    2. inventory section of the config file
    """
    preferred = get_inventory_paths()
    if preferred:
        jobs_dir, settings_file = preferred
        logger.info(f"Using inventory from preference: {jobs_dir}")
        return {'jobs_dir': str(jobs_dir), 'settings_file': str(settings_file)}

    inventory = config.get('inventory') or {}
    if 'jobs_dir' not in inventory:
        raise ConfigError(
            f"Missing 'inventory.jobs_dir' in config at {config_path}\n"
            f"Required format:\n"
            f"inventory:\n"
            f"  jobs_dir: /path/to/ci/jobs\n"
            f"Or remember a jobs directory with: hockeyapp-migrate config set-inventory /path/to/ci/jobs"
        )

    jobs_dir = Path(inventory['jobs_dir']).expanduser()
    inventory['jobs_dir'] = str(jobs_dir)
    inventory.setdefault('settings_file', str(jobs_dir.parent / SETTINGS_FILE_NAME))
    return inventory


def load_config() -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    Returns:
        Dict containing configuration with keys:
        - authentication: dict with type and service_account_path
        - gcp: dict with project_id
        - inventory: dict with jobs_dir and settings_file
        - migration: dict with credential_id_base and default_base_url

    Raises:
        ConfigError: If config file is invalid, incomplete, or references missing files
        FileNotFoundError: If no config file can be located
    """
    config_path = _get_config_path()

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")

    if 'authentication' not in config:
        raise ConfigError(
            f"Missing 'authentication' section in config at {config_path}\n"
            f"Required format:\n"
            f"authentication:\n"
            f"  type: service_account\n"
            f"  service_account_path: /path/to/service-account.json"
        )
    _validate_authentication(config, config_path)

    if 'gcp' not in config:
        raise ConfigError(
            f"Missing 'gcp' section in config at {config_path}\n"
            f"Required format:\n"
            f"gcp:\n"
            f"  project_id: your-project-id"
        )

    if 'project_id' not in config['gcp']:
        raise ConfigError("Missing 'gcp.project_id' in config")

    inventory = _resolve_inventory(config, config_path)
    config['inventory'] = inventory

    migration = config.get('migration') or {}
    migration.setdefault('credential_id_base', DEFAULT_CREDENTIAL_ID_BASE)
    migration.setdefault('default_base_url', DEFAULT_BASE_URL)
    config['migration'] = migration

    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Using service account: {config['authentication']['service_account_path']}")
    logger.debug(f"Using project ID: {config['gcp']['project_id']}")
    logger.debug(f"Using jobs directory: {inventory['jobs_dir']}")

    return config


def resolve_project_id(config: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """
    Resolve the GCP project ID.

    Priority order:
    1. GCP_PROJECT environment variable (allows override)
    2. gcp.project_id in the config
    """
    gcp_project_env = os.getenv("GCP_PROJECT")
    if gcp_project_env:
        logger.debug(f"Using GCP_PROJECT from environment: {gcp_project_env}")
        return gcp_project_env

    if config and 'gcp' in config and 'project_id' in config['gcp']:
        return config['gcp']['project_id']

    return None
