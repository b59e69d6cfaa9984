"""Key-management service clients used to encrypt and decrypt secret values.

Ciphertext is exchanged as base64 text so it can be stored in env.json.
"""
import base64
import binascii
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from google.api_core.exceptions import GoogleAPICallError
from google.auth.exceptions import GoogleAuthError
from google.cloud import kms

from .errors import ConfigError, RemoteServiceError
from .models import KeyContext

logger = logging.getLogger(__name__)


def _to_text(blob: bytes) -> str:
    return base64.b64encode(blob).decode("ascii")


def _from_text(ciphertext: str) -> bytes:
    try:
        return base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError) as e:
        raise RemoteServiceError(f"Malformed ciphertext, expected base64: {e}") from e


def _decode_plaintext(blob: bytes) -> str:
    try:
        return blob.decode("utf-8")
    except UnicodeDecodeError as e:
        raise RemoteServiceError(f"Decrypted value is not valid UTF-8: {e}") from e


def _require_key_id(ctx: KeyContext) -> str:
    if not ctx.key_id:
        raise RemoteServiceError(
            f"No KMS key id resolved for stage '{ctx.stage}'. "
            f"Set custom.envEncryptionKeyId in the host config or ENVCRYPT_KEY_ID."
        )
    return ctx.key_id


class CryptoGateway(ABC):
    """Remote encrypt/decrypt capability addressed by a KeyContext."""

    @abstractmethod
    def encrypt(self, plaintext: str, ctx: KeyContext) -> str:
        """Encrypt plaintext, returning the ciphertext payload as text."""

    @abstractmethod
    def decrypt(self, ciphertext: str, ctx: KeyContext) -> str:
        """Decrypt a ciphertext payload produced by encrypt()."""


class AWSKMSGateway(CryptoGateway):
    """AWS KMS binding (boto3). Uses the context's profile and region."""

    def __init__(self, client=None):
        self._client = client
        self._clients: Dict[Tuple[Optional[str], Optional[str]], object] = {}

    def client(self, ctx: KeyContext):
        """Lazy-initialize one KMS client per (profile, region)."""
        if self._client is not None:
            return self._client

        cache_key = (ctx.profile, ctx.region)
        if cache_key not in self._clients:
            session = boto3.session.Session(profile_name=ctx.profile, region_name=ctx.region)
            self._clients[cache_key] = session.client("kms")
            logger.debug(f"Created KMS client (profile={ctx.profile}, region={ctx.region})")
        return self._clients[cache_key]

    def encrypt(self, plaintext: str, ctx: KeyContext) -> str:
        key_id = _require_key_id(ctx)
        try:
            response = self.client(ctx).encrypt(KeyId=key_id, Plaintext=plaintext.encode("utf-8"))
        except (BotoCoreError, ClientError) as e:
            raise RemoteServiceError(f"KMS encrypt failed with key {key_id}: {e}") from e
        return _to_text(response["CiphertextBlob"])

    def decrypt(self, ciphertext: str, ctx: KeyContext) -> str:
        request = {"CiphertextBlob": _from_text(ciphertext)}
        if ctx.key_id:
            request["KeyId"] = ctx.key_id
        try:
            response = self.client(ctx).decrypt(**request)
        except (BotoCoreError, ClientError) as e:
            raise RemoteServiceError(f"KMS decrypt failed: {e}") from e
        return _decode_plaintext(response["Plaintext"])


class GCPKMSGateway(CryptoGateway):
    """Cloud KMS binding. The key id is the full CryptoKey resource name."""

    def __init__(self, client: Optional[kms.KeyManagementServiceClient] = None):
        self._client = client

    @property
    def client(self) -> kms.KeyManagementServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = kms.KeyManagementServiceClient()
        return self._client

    def encrypt(self, plaintext: str, ctx: KeyContext) -> str:
        key_name = _require_key_id(ctx)
        try:
            response = self.client.encrypt(
                request={"name": key_name, "plaintext": plaintext.encode("utf-8")}
            )
        except (GoogleAPICallError, GoogleAuthError) as e:
            raise RemoteServiceError(f"Cloud KMS encrypt failed with key {key_name}: {e}") from e
        return _to_text(response.ciphertext)

    def decrypt(self, ciphertext: str, ctx: KeyContext) -> str:
        key_name = _require_key_id(ctx)
        blob = _from_text(ciphertext)
        try:
            response = self.client.decrypt(request={"name": key_name, "ciphertext": blob})
        except (GoogleAPICallError, GoogleAuthError) as e:
            raise RemoteServiceError(f"Cloud KMS decrypt failed with key {key_name}: {e}") from e
        return _decode_plaintext(response.plaintext)


_GATEWAYS = {
    "aws": AWSKMSGateway,
    "gcp": GCPKMSGateway,
}


def get_gateway(backend: str = "aws") -> CryptoGateway:
    """
    Create the crypto gateway for a KMS backend.

    Raises:
        ConfigError: If the backend is unknown
    """
    try:
        return _GATEWAYS[backend]()
    except KeyError:
        raise ConfigError(
            f"Unsupported KMS backend: {backend}\n"
            f"Supported backends: {', '.join(sorted(_GATEWAYS))}"
        )
