"""Tests for the set/reveal secret workflow."""
import json
import stat
from dataclasses import replace
from unittest import mock

import pytest

from envcrypt.secrets.domains.errors import (
    ConfigError,
    RemoteServiceError,
    SecretNotFoundError,
    StoreCorruptError,
    ValidationError,
)
from envcrypt.secrets.domains.models import CommandOptions
from envcrypt.secrets.workflows import secret_operations
from envcrypt.secrets.workflows.secret_operations import (
    reveal_secret,
    run_encryptor,
    set_secret,
)

from conftest import FakeGateway, read_store


class TestSetSecret:
    """Test suite for set_secret."""

    def test_stage_scenario(self, service_dir, dev_ctx):
        """Encrypting DB_PASS for dev stores the tagged ciphertext under stages.dev."""
        gateway = FakeGateway(ciphertexts={"s3cr3t": "abc123"})
        options = CommandOptions(variable="DB_PASS", value="s3cr3t")

        set_secret(options, dev_ctx, gateway)

        assert read_store(service_dir) == {
            "common": {},
            "stages": {"dev": {"DB_PASS": "encrypted:abc123"}},
        }
        assert gateway.calls == [("encrypt", "s3cr3t", dev_ctx)]

    def test_common_does_not_touch_stages(self, service_dir, dev_ctx, gateway):
        (service_dir / "env.json").write_text(json.dumps({
            "common": {},
            "stages": {"dev": {"OTHER": "encrypted:x"}},
        }))

        set_secret(CommandOptions(variable="API_KEY", value="k", common=True), dev_ctx, gateway)

        store = read_store(service_dir)
        assert store["common"] == {"API_KEY": "encrypted:ct(k)"}
        assert store["stages"] == {"dev": {"OTHER": "encrypted:x"}}

    def test_stage_does_not_touch_common(self, service_dir, dev_ctx, gateway):
        (service_dir / "env.json").write_text(json.dumps({"common": {"SHARED": "encrypted:s"}}))

        set_secret(CommandOptions(variable="DB_PASS", value="p"), dev_ctx, gateway)

        store = read_store(service_dir)
        assert store["common"] == {"SHARED": "encrypted:s"}
        assert store["stages"] == {"dev": {"DB_PASS": "encrypted:ct(p)"}}

    def test_creates_missing_stage_map(self, service_dir, dev_ctx, gateway):
        prod_ctx = replace(dev_ctx, stage="prod")

        set_secret(CommandOptions(variable="DB_PASS", value="p"), prod_ctx, gateway)

        assert read_store(service_dir)["stages"] == {"dev": {}, "prod": {"DB_PASS": "encrypted:ct(p)"}}

    def test_keeps_other_keys_and_file_mode(self, service_dir, dev_ctx, gateway):
        store_file = service_dir / "env.json"
        store_file.write_text(json.dumps({"$schema": "x", "common": {}, "stages": {"dev": {}}}))
        store_file.chmod(0o644)

        set_secret(CommandOptions(variable="A", value="a"), dev_ctx, gateway)

        assert read_store(service_dir) == {
            "$schema": "x",
            "common": {},
            "stages": {"dev": {"A": "encrypted:ct(a)"}},
        }
        assert stat.S_IMODE(store_file.stat().st_mode) == 0o644

    def test_default_report_prints(self, service_dir, dev_ctx, gateway, capsys):
        set_secret(CommandOptions(variable="DB_PASS", value="p"), dev_ctx, gateway)
        reveal_secret(CommandOptions(variable="DB_PASS"), dev_ctx, gateway)

        out = capsys.readouterr().out
        assert "Successfully set DB_PASS for dev environment" in out
        assert "Successfully decrypted DB_PASS: p" in out

    def test_overwrites_existing_value(self, service_dir, dev_ctx, gateway):
        options = CommandOptions(variable="DB_PASS", value="old")
        set_secret(options, dev_ctx, gateway)
        set_secret(replace(options, value="new"), dev_ctx, gateway)

        assert read_store(service_dir)["stages"]["dev"] == {"DB_PASS": "encrypted:ct(new)"}

    def test_every_persisted_value_is_marked(self, service_dir, dev_ctx, gateway):
        for name, common in (("A", True), ("B", False), ("C", False)):
            set_secret(CommandOptions(variable=name, value=name.lower(), common=common), dev_ctx, gateway)

        store = read_store(service_dir)
        values = list(store["common"].values()) + [
            value for stage in store["stages"].values() for value in stage.values()
        ]
        assert values
        assert all(value.startswith("encrypted:") for value in values)

    def test_reports_success(self, service_dir, dev_ctx, gateway):
        messages = []
        set_secret(CommandOptions(variable="DB_PASS", value="p"), dev_ctx, gateway, report=messages.append)
        set_secret(CommandOptions(variable="KEY", value="k", common=True), dev_ctx, gateway,
                   report=messages.append)

        assert messages == [
            "Successfully set DB_PASS for dev environment",
            "Successfully set KEY for common environment",
        ]

    @pytest.mark.parametrize("variable", [None, ""])
    def test_missing_variable_has_no_side_effects(self, service_dir, dev_ctx, gateway, variable):
        """Validation fails before any file access or KMS call."""
        before = (service_dir / "env.json").read_text()

        with mock.patch.object(secret_operations, "load_store") as load, \
                mock.patch.object(secret_operations, "save_store") as save:
            with pytest.raises(ValidationError) as exc_info:
                set_secret(CommandOptions(variable=variable, value="x"), dev_ctx, gateway)

        assert "variable is required" in str(exc_info.value)
        load.assert_not_called()
        save.assert_not_called()
        assert gateway.calls == []
        assert (service_dir / "env.json").read_text() == before

    def test_missing_value(self, service_dir, dev_ctx, gateway):
        with pytest.raises(ValidationError):
            set_secret(CommandOptions(variable="DB_PASS"), dev_ctx, gateway)
        assert gateway.calls == []

    def test_missing_stage_is_config_error(self, service_dir, dev_ctx, gateway):
        with pytest.raises(ConfigError):
            set_secret(CommandOptions(variable="DB_PASS", value="p"), replace(dev_ctx, stage=None), gateway)
        assert gateway.calls == []

    def test_common_needs_no_stage(self, service_dir, dev_ctx, gateway):
        set_secret(CommandOptions(variable="KEY", value="k", common=True), replace(dev_ctx, stage=""), gateway)
        assert read_store(service_dir)["common"] == {"KEY": "encrypted:ct(k)"}

    def test_missing_store_file(self, tmp_path, dev_ctx, gateway):
        ctx = replace(dev_ctx, service_path=str(tmp_path / "empty"))

        with pytest.raises(StoreCorruptError) as exc_info:
            set_secret(CommandOptions(variable="DB_PASS", value="p"), ctx, gateway)

        assert "not found" in str(exc_info.value)
        assert gateway.calls == []

    def test_remote_failure_persists_nothing(self, service_dir, dev_ctx):
        before = (service_dir / "env.json").read_text()

        with pytest.raises(RemoteServiceError):
            set_secret(CommandOptions(variable="DB_PASS", value="p"), dev_ctx, FakeGateway(fail=True))

        assert (service_dir / "env.json").read_text() == before

    def test_explicit_store_path(self, tmp_path, dev_ctx, gateway):
        store_file = tmp_path / "secrets.json"
        store_file.write_text("{}")

        set_secret(CommandOptions(variable="DB_PASS", value="p"), dev_ctx, gateway, store_path=store_file)

        assert json.loads(store_file.read_text()) == {
            "common": {},
            "stages": {"dev": {"DB_PASS": "encrypted:ct(p)"}},
        }


class TestRevealSecret:
    """Test suite for reveal_secret."""

    def test_stage_scenario(self, service_dir, dev_ctx):
        (service_dir / "env.json").write_text(json.dumps({
            "common": {},
            "stages": {"dev": {"DB_PASS": "encrypted:abc123"}},
        }))
        gateway = FakeGateway(ciphertexts={"s3cr3t": "abc123"})
        messages = []

        plaintext = reveal_secret(CommandOptions(variable="DB_PASS", decrypt=True), dev_ctx, gateway,
                                  report=messages.append)

        assert plaintext == "s3cr3t"
        assert gateway.calls == [("decrypt", "abc123", dev_ctx)]
        assert messages == ["Successfully decrypted DB_PASS: s3cr3t"]

    def test_missing_variable_names_stage(self, service_dir, dev_ctx, gateway):
        with pytest.raises(SecretNotFoundError) as exc_info:
            reveal_secret(CommandOptions(variable="MISSING"), dev_ctx, gateway)

        assert "dev" in str(exc_info.value)
        assert "MISSING" in str(exc_info.value)
        assert exc_info.value.namespace == "dev"
        assert gateway.calls == []

    def test_missing_common_variable(self, service_dir, dev_ctx, gateway):
        with pytest.raises(SecretNotFoundError) as exc_info:
            reveal_secret(CommandOptions(variable="MISSING", common=True), dev_ctx, gateway)

        assert exc_info.value.namespace == "common"
        assert gateway.calls == []

    def test_missing_stage_map_is_not_found(self, service_dir, dev_ctx, gateway):
        with pytest.raises(SecretNotFoundError) as exc_info:
            reveal_secret(CommandOptions(variable="DB_PASS"), replace(dev_ctx, stage="prod"), gateway)
        assert "prod" in str(exc_info.value)

    def test_reveal_common(self, service_dir, dev_ctx, gateway):
        (service_dir / "env.json").write_text(json.dumps({"common": {"KEY": "encrypted:ct(k)"}}))

        assert reveal_secret(CommandOptions(variable="KEY", common=True), dev_ctx, gateway) == "k"

    def test_unmarked_value_is_decrypted_as_is(self, service_dir, dev_ctx, gateway):
        (service_dir / "env.json").write_text(json.dumps({"stages": {"dev": {"KEY": "ct(k)"}}}))

        assert reveal_secret(CommandOptions(variable="KEY"), dev_ctx, gateway) == "k"
        assert gateway.calls[0][1] == "ct(k)"

    def test_empty_string_value_is_present(self, service_dir, dev_ctx, gateway):
        """An empty stored value is found and handed to the KMS, not reported missing."""
        (service_dir / "env.json").write_text(json.dumps({"stages": {"dev": {"KEY": ""}}}))

        with pytest.raises(RemoteServiceError):
            reveal_secret(CommandOptions(variable="KEY"), dev_ctx, gateway)
        assert gateway.calls[0][:2] == ("decrypt", "")

    def test_does_not_write_store(self, service_dir, dev_ctx, gateway):
        set_secret(CommandOptions(variable="DB_PASS", value="p"), dev_ctx, gateway)

        with mock.patch.object(secret_operations, "save_store") as save:
            reveal_secret(CommandOptions(variable="DB_PASS"), dev_ctx, gateway)
        save.assert_not_called()

    def test_missing_variable(self, service_dir, dev_ctx, gateway):
        with pytest.raises(ValidationError):
            reveal_secret(CommandOptions(variable=""), dev_ctx, gateway)
        assert gateway.calls == []

    def test_corrupt_store(self, service_dir, dev_ctx, gateway):
        (service_dir / "env.json").write_text("not json")

        with pytest.raises(StoreCorruptError):
            reveal_secret(CommandOptions(variable="DB_PASS"), dev_ctx, gateway)


class TestRunEncryptor:
    """Round trips through the encryptor dispatch."""

    @pytest.mark.parametrize("common", [True, False])
    @pytest.mark.parametrize("plaintext", ["s3cr3t", "with spaces and ünïcode", "encrypted:looks-tagged"])
    def test_set_then_reveal(self, service_dir, dev_ctx, gateway, common, plaintext):
        set_result = run_encryptor(CommandOptions(variable="VAR", value=plaintext, common=common),
                                   dev_ctx, gateway)
        revealed = run_encryptor(CommandOptions(variable="VAR", decrypt=True, common=common),
                                 dev_ctx, gateway)

        assert set_result is None
        assert revealed == plaintext
