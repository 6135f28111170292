"""
Tests for aggregator configuration.

Environment supplies defaults; a YAML file overrides them key by key.
"""

from pathlib import Path

import pytest

from aggregation.binding import ClaimHashPolicy
from aggregation.errors import ConfigError
from aggregation.types import BackendTarget, ExecuteOrProve, ProofEncoding
from aggregation.verifiers import SnarkjsGroth16Verifier
from backend.config import AggregatorConfig, load_config
from backend.security.runtime_env import (
    InvalidEnvironmentVariable,
    MissingEnvironmentVariable,
    get_env_bool,
    get_env_int,
    get_required_env,
)


def _write(tmp_path, text):
    path = tmp_path / "aggregator.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestEnvironmentDefaults:
    def test_builtin_defaults(self):
        config = load_config()

        assert config.proof_mode == "compressed"
        assert config.network == "local"
        assert config.claim_hash_policy == "strict"
        assert config.prover_timeout_s == 7200.0
        assert config.verify_input_proofs is False

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("AGGREGATOR_NETWORK", "mainnet")
        monkeypatch.setenv("AGGREGATOR_PROOF_MODE", "groth16")
        monkeypatch.setenv("AGGREGATOR_NETWORK_TIMEOUT_S", "60")

        config = load_config()

        assert config.default_dispatch() == (ExecuteOrProve.PROVE, BackendTarget.MAINNET, ProofEncoding.GROTH16)
        assert config.network_timeout_s == 60.0

    def test_invalid_env_number(self, monkeypatch):
        monkeypatch.setenv("AGGREGATOR_PROVER_TIMEOUT_S", "forever")
        with pytest.raises(ConfigError):
            load_config()

    def test_invalid_env_bool(self, monkeypatch):
        monkeypatch.setenv("AGGREGATOR_VERIFY_INPUT_PROOFS", "maybe")
        with pytest.raises(ConfigError):
            load_config()


class TestYamlOverrides:
    def test_yaml_overrides_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AGGREGATOR_NETWORK", "reserved")
        path = _write(tmp_path, "network: local\nproof_mode: plonk\nprover_timeout_s: 30\n")

        config = load_config(path)

        assert config.network == "local"
        assert config.proof_mode == "plonk"
        assert config.prover_timeout_s == 30.0

    def test_empty_file(self, tmp_path):
        assert load_config(_write(tmp_path, "")).network == "local"

    def test_unknown_key(self, tmp_path):
        with pytest.raises(ConfigError, match="prover_url"):
            load_config(_write(tmp_path, "prover_url: http://x\n"))

    def test_wrong_type(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "verify_input_proofs: 'yes'\n"))

    def test_not_a_mapping(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "- a\n- b\n"))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, "network: [unclosed\n"))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "absent.yaml")


class TestSocialSettings:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AGGREGATOR_SOCIAL_VERIFIED_ROOT", "0xroot")
        monkeypatch.setenv("AGGREGATOR_SOCIAL_MIN_VERIFIED_NEEDED", "25")

        config = load_config()

        assert config.social_config() == {"verified_root": "0xroot", "min_verified_needed": 25}

    def test_from_yaml(self, tmp_path):
        path = _write(tmp_path, "verified_root: '123'\nmin_verified_needed: 3\n")
        assert load_config(path).social_config() == {"verified_root": "123", "min_verified_needed": 3}

    def test_unconfigured(self):
        with pytest.raises(ConfigError, match="AGGREGATOR_SOCIAL_VERIFIED_ROOT"):
            AggregatorConfig().social_config()
        with pytest.raises(ConfigError):
            AggregatorConfig(verified_root="r").social_config()

    @pytest.mark.parametrize("threshold", [0, 101])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(ConfigError, match="min_verified_needed"):
            AggregatorConfig(verified_root="r", min_verified_needed=threshold).validate()

    @pytest.mark.parametrize("raw", ["'10'", "true", "2.5"])
    def test_yaml_threshold_must_be_integer(self, tmp_path, raw):
        with pytest.raises(ConfigError, match="integer"):
            load_config(_write(tmp_path, f"min_verified_needed: {raw}\n"))

    def test_invalid_env_threshold(self, monkeypatch):
        monkeypatch.setenv("AGGREGATOR_SOCIAL_MIN_VERIFIED_NEEDED", "ten")
        with pytest.raises(ConfigError):
            load_config()


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"proof_mode": "stark"},
            {"network": "testnet"},
            {"claim_hash_policy": "loose"},
            {"nonce_ttl_s": 0},
            {"verify_input_proofs": True},
        ],
    )
    def test_inconsistent_config(self, overrides):
        with pytest.raises(ConfigError):
            AggregatorConfig(**overrides).validate()

    def test_relaxed_allowed_by_default(self):
        config = AggregatorConfig(claim_hash_policy="relaxed")
        config.validate()
        assert config.resolved_policy() is ClaimHashPolicy.RELAXED

    def test_relaxed_forbidden_in_strict_mode(self, monkeypatch):
        monkeypatch.setenv("AGGREGATOR_STRICT", "1")
        with pytest.raises(ConfigError, match="AGGREGATOR_STRICT"):
            AggregatorConfig(claim_hash_policy="relaxed").validate()

    def test_execute_mode_dispatches_locally(self):
        config = AggregatorConfig(proof_mode="execute", network="mainnet")
        mode, target, _ = config.default_dispatch()
        assert (mode, target) == (ExecuteOrProve.EXECUTE, BackendTarget.LOCAL)


class TestConfigHelpers:
    def test_api_key_masked(self):
        assert AggregatorConfig(network_api_key="secret").to_dict()["network_api_key"] == "***"

    def test_rpc_url_per_tier(self):
        config = AggregatorConfig(reserved_rpc_url="https://r", mainnet_rpc_url="https://m")
        assert config.rpc_url_for(BackendTarget.RESERVED) == "https://r"
        assert config.rpc_url_for(BackendTarget.MAINNET) == "https://m"
        assert config.rpc_url_for(BackendTarget.LOCAL) is None

    def test_validator_with_verifier(self):
        config = AggregatorConfig(
            verify_input_proofs=True,
            generation_vk_path="gen_vk.json",
            social_vk_path="social_vk.json",
        )

        validator = config.build_validator()

        assert isinstance(validator.verifier, SnarkjsGroth16Verifier)
        assert validator.verifying_keys["social"] == Path("social_vk.json")

    def test_load_program(self, tmp_path):
        elf = tmp_path / "aggregator.elf"
        elf.write_bytes(b"\x7fELF")

        program = AggregatorConfig(program_path=str(elf)).load_program()

        assert program.name == "aggregator"
        assert program.elf == b"\x7fELF"
        assert len(program.digest) == 64

    def test_load_program_unconfigured(self):
        with pytest.raises(ConfigError):
            AggregatorConfig(program_path=None).load_program()

    def test_load_empty_program(self, tmp_path):
        elf = tmp_path / "empty.elf"
        elf.write_bytes(b"")
        with pytest.raises(ConfigError):
            AggregatorConfig(program_path=str(elf)).load_program()


class TestRuntimeEnv:
    def test_required_env_missing(self):
        with pytest.raises(MissingEnvironmentVariable):
            get_required_env("AGGREGATOR_NETWORK_API_KEY")

    def test_required_env_stripped(self, monkeypatch):
        monkeypatch.setenv("AGGREGATOR_NETWORK_API_KEY", "  key  ")
        assert get_required_env("AGGREGATOR_NETWORK_API_KEY") == "key"

    @pytest.mark.parametrize("raw,expected", [("1", True), ("on", True), ("0", False), ("", False)])
    def test_env_bool(self, monkeypatch, raw, expected):
        monkeypatch.setenv("AGGREGATOR_FLAG", raw)
        assert get_env_bool("AGGREGATOR_FLAG") is expected

    def test_env_bool_invalid(self, monkeypatch):
        monkeypatch.setenv("AGGREGATOR_FLAG", "sometimes")
        with pytest.raises(InvalidEnvironmentVariable):
            get_env_bool("AGGREGATOR_FLAG")

    def test_env_int(self, monkeypatch):
        assert get_env_int("AGGREGATOR_COUNT", 7) == 7
        monkeypatch.setenv("AGGREGATOR_COUNT", " 12 ")
        assert get_env_int("AGGREGATOR_COUNT") == 12
        monkeypatch.setenv("AGGREGATOR_COUNT", "1.5")
        with pytest.raises(InvalidEnvironmentVariable):
            get_env_int("AGGREGATOR_COUNT")
