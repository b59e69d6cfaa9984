"""Host configuration loader for agent-envcrypt.

The host config plays the part of the deployment descriptor: it names the
default stage, region and profile, plus the KMS key id(s) used to encrypt
secrets. Environment variables override anything read from the file.
"""
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .errors import ConfigError
from .models import (
    DEFAULT_KMS_BACKEND,
    DEFAULT_SERVICE_PATH,
    DEFAULT_STORE_FILE,
    HostDefaults,
    KeyIdSource,
)
from .preferences import get_default_service_path, get_selected_stage

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "envcrypt.yml"
KMS_BACKENDS = ("aws", "gcp")

STAGE_ENV = "ENVCRYPT_STAGE"
KEY_ID_ENV = "ENVCRYPT_KEY_ID"
REGION_ENVS = ("AWS_REGION", "AWS_DEFAULT_REGION")
PROFILE_ENV = "AWS_PROFILE"


def _get_config_path(service_path: str = DEFAULT_SERVICE_PATH,
                     explicit_path: Optional[str] = None) -> Optional[str]:
    """
    Get the host config file path.

    Priority order:
    1. Explicit path (--config); must exist
    2. <service_path>/envcrypt.yml

    Returns:
        Absolute path to config file, or None if no config file is present

    Raises:
        ConfigError: If an explicit path was given but doesn't exist
    """
    if explicit_path:
        config_path = Path(explicit_path).expanduser()
        if not config_path.is_file():
            raise ConfigError(f"Configuration file not found at: {config_path}")
        return str(config_path.resolve())

    default_config = Path(service_path) / CONFIG_FILENAME
    if default_config.is_file():
        logger.info(f"Using config from service path: {default_config}")
        return str(default_config.resolve())

    logger.debug(f"No {CONFIG_FILENAME} found, relying on environment and command line")
    return None


def _preferred_service_path() -> Optional[str]:
    service_path = get_default_service_path()
    if not service_path:
        return None
    if not Path(service_path).is_dir():
        logger.warning(f"Default service path from preferences doesn't exist: {service_path}")
        return None
    logger.info(f"Using default service path from preferences: {service_path}")
    return service_path


def _validate_key_id_source(source: Any, config_path: str) -> KeyIdSource:
    if source is None or isinstance(source, str):
        return source
    if isinstance(source, dict):
        for stage, key_id in source.items():
            if not isinstance(key_id, str):
                raise ConfigError(
                    f"custom.envEncryptionKeyId.{stage} in {config_path} must be a string"
                )
        return {str(stage): key_id for stage, key_id in source.items()}
    raise ConfigError(
        f"custom.envEncryptionKeyId in {config_path} must be a key id or a mapping of stage to key id\n"
        f"Required format:\n"
        f"custom:\n"
        f"  envEncryptionKeyId:\n"
        f"    dev: alias/dev-key\n"
        f"    prod: alias/prod-key"
    )


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load and validate a host config YAML file.

    Args:
        config_path: Path to the YAML file

    Returns:
        Dict with optional 'provider' and 'custom' sections

    Raises:
        ConfigError: If the file is unreadable, empty, or has an invalid shape
    """
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")

    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    for section in ("provider", "custom"):
        if not isinstance(config.get(section, {}), dict):
            raise ConfigError(f"'{section}' section in {config_path} must be a mapping")

    custom = config.get("custom", {})
    _validate_key_id_source(custom.get("envEncryptionKeyId"), config_path)

    backend = custom.get("kmsBackend", DEFAULT_KMS_BACKEND)
    if backend not in KMS_BACKENDS:
        raise ConfigError(
            f"Unsupported KMS backend: {backend}\n"
            f"Supported backends: {', '.join(KMS_BACKENDS)}"
        )

    logger.info(f"Configuration loaded successfully from {config_path}")
    return config


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            logger.debug(f"Using {name} from environment: {value}")
            return value
    return None


def load_host_defaults(service_path: Optional[str] = None,
                       config_path: Optional[str] = None) -> HostDefaults:
    """
    Build the host-provided defaults from the config file and environment.

    Service path: the one given, else the default remembered in preferences
    (only when no --config is given), else the config file's directory, else ".".

    Stage: ENVCRYPT_STAGE, else the stage selected for this project with
    'envcrypt config use-stage', else provider.stage from the config file.

    Region, profile and key id: AWS_REGION / AWS_DEFAULT_REGION, AWS_PROFILE
    and ENVCRYPT_KEY_ID take precedence over the config file.

    Args:
        service_path: Directory holding envcrypt.yml and env.json
        config_path: Explicit config file path

    Returns:
        HostDefaults for the key-context resolver

    Raises:
        ConfigError: If the config file is invalid
    """
    if not service_path and not config_path:
        service_path = _preferred_service_path()

    resolved_path = _get_config_path(service_path or DEFAULT_SERVICE_PATH, config_path)
    config: Dict[str, Any] = load_config(resolved_path) if resolved_path else {}

    provider = config.get("provider", {})
    custom = config.get("custom", {})

    if resolved_path and not service_path:
        service_path = str(Path(resolved_path).parent)

    key_id_source = _first_env(KEY_ID_ENV)
    if key_id_source is None:
        key_id_source = _validate_key_id_source(custom.get("envEncryptionKeyId"), resolved_path)

    stage = (
        _first_env(STAGE_ENV)
        or get_selected_stage(service_path or DEFAULT_SERVICE_PATH)
        or provider.get("stage")
    )

    return HostDefaults(
        region=_first_env(*REGION_ENVS) or provider.get("region"),
        profile=_first_env(PROFILE_ENV) or provider.get("profile"),
        stage=stage,
        service_path=service_path,
        key_id_source=key_id_source,
        store_file=custom.get("envFile", DEFAULT_STORE_FILE),
        kms_backend=custom.get("kmsBackend", DEFAULT_KMS_BACKEND),
    )
