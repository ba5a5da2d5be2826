"""Persistent CLI preferences for hockeyapp-migrator.

Preferences remember where things live between runs so the common commands
need no flags:

- config_path: YAML config to load instead of the default location
- jobs_dir / settings_file: job inventory to scan and migrate

Stored as JSON in ~/.config/hockeyapp-migrator/preferences.json.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .models import SETTINGS_FILE_NAME

logger = logging.getLogger(__name__)

PREFERENCES_DIR = Path.home() / ".config" / "hockeyapp-migrator"
PREFERENCES_FILE = PREFERENCES_DIR / "preferences.json"

CONFIG_PATH = "config_path"
JOBS_DIR = "jobs_dir"
SETTINGS_FILE = "settings_file"


def _load() -> Dict[str, Any]:
    """Read the preferences file; a missing or unreadable file means no preferences."""
    if not PREFERENCES_FILE.exists():
        return {}

    try:
        with open(PREFERENCES_FILE, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse preferences file {PREFERENCES_FILE}: {e}")
        return {}
    except OSError as e:
        logger.error(f"Failed to read preferences file {PREFERENCES_FILE}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.error(f"Ignoring preferences file {PREFERENCES_FILE}: not a JSON object")
        return {}
    return data


def _save(data: Dict[str, Any]) -> None:
    PREFERENCES_DIR.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(PREFERENCES_DIR), prefix=".preferences.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_name, PREFERENCES_FILE)
    except OSError as e:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        logger.error(f"Failed to save preferences to {PREFERENCES_FILE}: {e}")
        raise


def _update(**changes: Optional[str]) -> None:
    """Apply changes in one write. A value of None removes the key."""
    data = _load()
    before = dict(data)
    for key, value in changes.items():
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
    if data != before:
        _save(data)


def get_config_path() -> Optional[Path]:
    """Preferred config file, or None to use the default location."""
    value = _load().get(CONFIG_PATH)
    return Path(value) if value else None


def set_config_path(path: Path) -> None:
    _update(config_path=str(path))
    logger.info(f"Config path preference set to: {path}")


def clear_config_path() -> None:
    _update(config_path=None)
    logger.info("Config path preference cleared")


def get_inventory_paths() -> Optional[Tuple[Path, Path]]:
    """
    Preferred job inventory.

    Returns:
        (jobs_dir, settings_file), or None if no jobs directory was saved.
        The settings file defaults to hockeyapp.yml beside the jobs directory.
    """
    data = _load()
    jobs_dir = data.get(JOBS_DIR)
    if not jobs_dir:
        return None
    jobs_dir = Path(jobs_dir)
    settings_file = data.get(SETTINGS_FILE)
    return jobs_dir, (Path(settings_file) if settings_file else jobs_dir.parent / SETTINGS_FILE_NAME)


def set_inventory_paths(jobs_dir: Path, settings_file: Optional[Path] = None) -> None:
    """Remember the job inventory. Omitting settings_file drops any earlier one."""
    _update(jobs_dir=str(jobs_dir), settings_file=str(settings_file) if settings_file else None)
    logger.info(f"Inventory preference set to: {jobs_dir}")


def clear_inventory_paths() -> None:
    _update(jobs_dir=None, settings_file=None)
    logger.info("Inventory preference cleared")
