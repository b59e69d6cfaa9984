"""Domain models for stage-scoped secret management."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .errors import ConfigError

ENCRYPT_PREFIX = "encrypted:"
COMMON_NAMESPACE = "common"
DEFAULT_SERVICE_PATH = "."
DEFAULT_STORE_FILE = "env.json"
DEFAULT_KMS_BACKEND = "aws"

# Either one key id for every stage or a {stage: key_id} mapping
KeyIdSource = Union[str, Dict[str, str], None]


@dataclass
class SecretStore:
    """In-memory view of the env.json secret store."""
    common: Dict[str, str] = field(default_factory=dict)
    stages: Dict[str, Dict[str, str]] = field(default_factory=dict)
    # Other top-level keys of env.json, written back untouched
    extra: Dict[str, Any] = field(default_factory=dict)

    def namespace(self, stage: str) -> Dict[str, str]:
        """Return the map for a stage, creating it if absent."""
        if stage not in self.stages:
            self.stages[stage] = {}
        return self.stages[stage]

    def lookup(self, variable: str, stage: Optional[str] = None) -> Optional[str]:
        """
        Look up a stored value by presence, not truthiness.

        Args:
            variable: Secret name
            stage: Stage to search, or None for the common namespace

        Returns:
            Stored value, or None if the variable (or the stage map) is absent
        """
        if stage is None:
            source = self.common
        elif stage in self.stages:
            source = self.stages[stage]
        else:
            return None

        if variable not in source:
            return None
        return source[variable]

    def to_dict(self) -> Dict[str, Any]:
        document = dict(self.extra)
        document["common"] = self.common
        document["stages"] = self.stages
        return document


@dataclass(frozen=True)
class KeyContext:
    """Resolved parameters needed to address the key-management service."""
    region: Optional[str]
    profile: Optional[str]
    stage: Optional[str]
    service_path: str
    key_id: Optional[str]

    def require_stage(self) -> str:
        """
        Return the active stage.

        Raises:
            ConfigError: If no stage was resolved
        """
        if not self.stage:
            raise ConfigError(
                "No stage resolved. Pass --stage, set ENVCRYPT_STAGE, "
                "or configure provider.stage in the host config."
            )
        return self.stage


@dataclass(frozen=True)
class HostDefaults:
    """Context supplied by the host environment (config file + env vars)."""
    region: Optional[str] = None
    profile: Optional[str] = None
    stage: Optional[str] = None
    service_path: Optional[str] = None
    key_id_source: KeyIdSource = None
    store_file: str = DEFAULT_STORE_FILE
    kms_backend: str = DEFAULT_KMS_BACKEND


@dataclass
class CommandOptions:
    """Per-invocation options of the encryptor command."""
    variable: Optional[str] = None
    value: Optional[str] = None
    decrypt: bool = False
    common: bool = False
