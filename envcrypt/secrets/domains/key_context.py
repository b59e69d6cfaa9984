"""Resolve the key context for one encryptor invocation."""
import logging
from typing import Optional

from .models import DEFAULT_SERVICE_PATH, HostDefaults, KeyContext, KeyIdSource

logger = logging.getLogger(__name__)


def select_key_id(source: KeyIdSource, stage: Optional[str]) -> Optional[str]:
    """
    Pick the key id for a stage.

    Args:
        source: Single key id, {stage: key_id} mapping, or None
        stage: Active stage

    Returns:
        Key id, or None when the mapping has no entry for the stage
    """
    if isinstance(source, dict):
        key_id = source.get(stage) if stage else None
        if key_id is None:
            logger.debug(f"No key id configured for stage '{stage}'")
        return key_id
    return source


def resolve_key_context(host: HostDefaults,
                        stage: Optional[str] = None,
                        region: Optional[str] = None,
                        profile: Optional[str] = None,
                        service_path: Optional[str] = None) -> KeyContext:
    """
    Merge explicit (command line) overrides over host defaults.

    Missing region/profile/key id are not errors here; the KMS call reports
    them. The result is computed once per invocation and passed along.
    """
    resolved_stage = stage or host.stage
    return KeyContext(
        region=region or host.region,
        profile=profile or host.profile,
        stage=resolved_stage,
        service_path=service_path or host.service_path or DEFAULT_SERVICE_PATH,
        key_id=select_key_id(host.key_id_source, resolved_stage),
    )
