"""Per-user working preferences for agent-envcrypt.

Two things are remembered between invocations, in
~/.config/agent-envcrypt/preferences.json:

    {
      "service_path": "/home/me/src/billing",
      "stages": {"/home/me/src/billing": "prod"}
    }

``service_path`` is the project used when --service-path is not given.
``stages`` holds the stage selected for each project (keyed by absolute
path), so switching stage in one checkout does not affect another.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

PREFERENCES_DIR = Path.home() / ".config" / "agent-envcrypt"
PREFERENCES_FILE = PREFERENCES_DIR / "preferences.json"


def _project_key(service_path: Union[str, Path]) -> str:
    return str(Path(service_path).expanduser().resolve())


def _load_preferences() -> Dict[str, Any]:
    if not PREFERENCES_FILE.exists():
        return {}

    try:
        with open(PREFERENCES_FILE, 'r') as f:
            preferences = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Ignoring unreadable preferences file {PREFERENCES_FILE}: {e}")
        return {}

    if not isinstance(preferences, dict):
        logger.error(f"Ignoring preferences file {PREFERENCES_FILE}: expected a JSON object")
        return {}
    if not isinstance(preferences.get("stages", {}), dict):
        logger.error(f"Ignoring malformed 'stages' in {PREFERENCES_FILE}")
        preferences["stages"] = {}
    return preferences


def _save_preferences(preferences: Dict[str, Any]) -> None:
    PREFERENCES_DIR.mkdir(parents=True, exist_ok=True)
    with open(PREFERENCES_FILE, 'w') as f:
        json.dump(preferences, f, indent=2)


def get_default_service_path() -> Optional[str]:
    """Project directory used when none is passed, or None."""
    return _load_preferences().get("service_path")


def set_default_service_path(service_path: Union[str, Path]) -> str:
    """
    Remember a project directory as the default service path.

    Args:
        service_path: Directory holding env.json

    Returns:
        The absolute path that was stored
    """
    preferences = _load_preferences()
    preferences["service_path"] = _project_key(service_path)
    _save_preferences(preferences)
    logger.info(f"Default service path set to: {preferences['service_path']}")
    return preferences["service_path"]


def get_selected_stage(service_path: Union[str, Path]) -> Optional[str]:
    return _load_preferences().get("stages", {}).get(_project_key(service_path))


def select_stage(service_path: Union[str, Path], stage: str) -> None:
    """Remember the active stage for one project."""
    preferences = _load_preferences()
    preferences.setdefault("stages", {})[_project_key(service_path)] = stage
    _save_preferences(preferences)
    logger.info(f"Stage '{stage}' selected for {_project_key(service_path)}")


def clear_project(service_path: Union[str, Path]) -> bool:
    """
    Forget the selected stage of a project, and the default service path if
    it points at that project.

    Returns:
        True if anything was removed
    """
    key = _project_key(service_path)
    preferences = _load_preferences()
    removed = preferences.get("stages", {}).pop(key, None) is not None
    if preferences.get("service_path") == key:
        del preferences["service_path"]
        removed = True

    if removed:
        _save_preferences(preferences)
        logger.info(f"Preferences cleared for {key}")
    else:
        logger.debug(f"No preferences stored for {key}, nothing to clear")
    return removed
