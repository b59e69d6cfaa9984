"""Shared fixtures for agent-envcrypt tests."""
import json
from pathlib import Path

import pytest

from envcrypt.secrets.domains import preferences
from envcrypt.secrets.domains.errors import RemoteServiceError
from envcrypt.secrets.domains.kms_client import CryptoGateway
from envcrypt.secrets.domains.models import KeyContext

HOST_ENV_VARS = (
    "ENVCRYPT_STAGE",
    "ENVCRYPT_KEY_ID",
    "AWS_REGION",
    "AWS_DEFAULT_REGION",
    "AWS_PROFILE",
)


class FakeGateway(CryptoGateway):
    """Deterministic gateway: ciphertext is 'ct(<plaintext>)' unless overridden."""

    def __init__(self, ciphertexts=None, fail=False):
        self.ciphertexts = ciphertexts or {}
        self.fail = fail
        self.calls = []

    def encrypt(self, plaintext, ctx):
        self.calls.append(("encrypt", plaintext, ctx))
        if self.fail:
            raise RemoteServiceError("KMS encrypt failed: AccessDeniedException")
        return self.ciphertexts.get(plaintext, f"ct({plaintext})")

    def decrypt(self, ciphertext, ctx):
        self.calls.append(("decrypt", ciphertext, ctx))
        if self.fail:
            raise RemoteServiceError("KMS decrypt failed: InvalidCiphertextException")
        for plaintext, known in self.ciphertexts.items():
            if known == ciphertext:
                return plaintext
        if ciphertext.startswith("ct(") and ciphertext.endswith(")"):
            return ciphertext[3:-1]
        raise RemoteServiceError(f"KMS decrypt failed: unknown ciphertext {ciphertext}")


@pytest.fixture(autouse=True)
def temp_home(tmp_path, monkeypatch):
    """Isolate HOME, the preferences file and host environment variables."""
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setattr(Path, "home", lambda: fake_home)

    fake_config_dir = fake_home / ".config" / "agent-envcrypt"
    monkeypatch.setattr(preferences, "PREFERENCES_DIR", fake_config_dir)
    monkeypatch.setattr(preferences, "PREFERENCES_FILE", fake_config_dir / "preferences.json")

    for name in HOST_ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    return fake_home


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def service_dir(tmp_path):
    """Service directory holding an env.json with an empty dev stage."""
    directory = tmp_path / "service"
    directory.mkdir()
    (directory / "env.json").write_text(json.dumps({"common": {}, "stages": {"dev": {}}}))
    return directory


@pytest.fixture
def dev_ctx(service_dir):
    return KeyContext(
        region="us-east-1",
        profile=None,
        stage="dev",
        service_path=str(service_dir),
        key_id="alias/dev-key",
    )


def read_store(directory):
    return json.loads((Path(directory) / "env.json").read_text())
