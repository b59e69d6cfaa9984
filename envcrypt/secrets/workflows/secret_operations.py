"""Workflow for setting and revealing encrypted secrets in env.json."""
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from ..domains.errors import SecretNotFoundError, ValidationError
from ..domains.kms_client import CryptoGateway
from ..domains.models import (
    COMMON_NAMESPACE,
    DEFAULT_STORE_FILE,
    CommandOptions,
    KeyContext,
)
from ..domains.store_codec import load_store, mark_encrypted, save_store, unmark_encrypted

logger = logging.getLogger(__name__)

Reporter = Callable[[str], None]


def _store_path(ctx: KeyContext, store_path: Optional[Union[str, Path]]) -> Path:
    if store_path is not None:
        return Path(store_path)
    return Path(ctx.service_path) / DEFAULT_STORE_FILE


def _validate(options: CommandOptions, ctx: KeyContext) -> str:
    """Check options and return the target namespace name. Performs no I/O."""
    if not options.variable:
        raise ValidationError("variable is required (pass --variable)")
    if options.common:
        return COMMON_NAMESPACE
    return ctx.require_stage()


def set_secret(options: CommandOptions,
               ctx: KeyContext,
               gateway: CryptoGateway,
               store_path: Optional[Union[str, Path]] = None,
               report: Optional[Reporter] = None) -> None:
    """
    Encrypt a value and store it in the common or stage namespace.

    Args:
        options: variable, value and common flag
        ctx: Resolved key context
        gateway: KMS binding used to encrypt
        store_path: Path to env.json (defaults to <service_path>/env.json)
        report: Callable receiving user-facing status lines (defaults to print)

    Raises:
        ValidationError: If variable or value is missing
        ConfigError: If no stage is resolved for a stage-scoped secret
        StoreCorruptError: If env.json is missing or malformed
        RemoteServiceError: If the KMS call fails

    Nothing is written unless every step before the save succeeds.
    """
    report = report or print
    namespace = _validate(options, ctx)
    if options.value is None:
        raise ValidationError("value is required when setting a secret (pass --value)")

    path = _store_path(ctx, store_path)
    store = load_store(path)

    ciphertext = gateway.encrypt(options.value, ctx)
    logger.debug(f"Encrypted value: {ciphertext}")
    value = mark_encrypted(ciphertext)

    if options.common:
        store.common[options.variable] = value
    else:
        store.namespace(namespace)[options.variable] = value

    save_store(path, store)
    report(f"Successfully set {options.variable} for {namespace} environment")


def reveal_secret(options: CommandOptions,
                  ctx: KeyContext,
                  gateway: CryptoGateway,
                  store_path: Optional[Union[str, Path]] = None,
                  report: Optional[Reporter] = None) -> str:
    """
    Decrypt a stored secret.

    Args:
        options: variable and common flag
        ctx: Resolved key context
        gateway: KMS binding used to decrypt
        store_path: Path to env.json (defaults to <service_path>/env.json)
        report: Callable receiving user-facing status lines (defaults to print)

    Returns:
        Decrypted plaintext

    Raises:
        ValidationError: If variable is missing
        ConfigError: If no stage is resolved for a stage-scoped secret
        StoreCorruptError: If env.json is missing or malformed
        SecretNotFoundError: If the variable is absent from the namespace
        RemoteServiceError: If the KMS call fails
    """
    report = report or print
    namespace = _validate(options, ctx)

    store = load_store(_store_path(ctx, store_path))
    value = store.lookup(options.variable, None if options.common else namespace)
    if value is None:
        raise SecretNotFoundError(options.variable, namespace)

    plaintext = gateway.decrypt(unmark_encrypted(value), ctx)
    report(f"Successfully decrypted {options.variable}: {plaintext}")
    return plaintext


def run_encryptor(options: CommandOptions,
                  ctx: KeyContext,
                  gateway: CryptoGateway,
                  store_path: Optional[Union[str, Path]] = None,
                  report: Optional[Reporter] = None) -> Optional[str]:
    """Run the encryptor command: reveal with options.decrypt, set otherwise."""
    if options.decrypt:
        return reveal_secret(options, ctx, gateway, store_path, report)
    set_secret(options, ctx, gateway, store_path, report)
    return None
