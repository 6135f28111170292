"""
Aggregator configuration.

Defaults come from the environment (``AGGREGATOR_*``); a YAML file passed to
``load_config`` overrides them key by key. The resulting object is treated as
immutable once the process has started.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from aggregation.binding import BindingValidator, ClaimHashPolicy
from aggregation.errors import ConfigError
from aggregation.tiers import MAX_SOCIAL_LEVEL, MIN_SOCIAL_LEVEL
from aggregation.types import BackendTarget, ExecuteOrProve, ProofEncoding
from aggregation.verifiers import SnarkjsGroth16Verifier
from backend.prover.interface import ProgramImage
from backend.security.runtime_env import (
    InvalidEnvironmentVariable,
    get_env_bool,
    get_env_float,
    get_env_int,
    get_optional_env,
    is_strict_mode,
)

PROOF_MODES = ("execute",) + ProofEncoding.choices()

_FLOAT_FIELDS = frozenset({"prover_timeout_s", "network_timeout_s", "nonce_ttl_s"})
_BOOL_FIELDS = frozenset({"verify_input_proofs", "prepare_on_startup"})
_INT_FIELDS = frozenset({"min_verified_needed"})


@dataclass
class AggregatorConfig:
    """Deployment settings for the aggregation pipeline."""

    # Program image (the compiled aggregation program)
    program_path: Optional[str] = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_PROGRAM_PATH")
    )
    program_name: str = "aggregator"

    # Local prover host
    prover_bin: Optional[str] = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_PROVER_BIN")
    )
    prover_timeout_s: float = field(
        default_factory=lambda: get_env_float("AGGREGATOR_PROVER_TIMEOUT_S", 7200.0)
    )

    # Default dispatch: "execute" or one of the proof encodings
    proof_mode: str = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_PROOF_MODE", "compressed")
    )
    network: str = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_NETWORK", "local")
    )

    # Remote prover network tiers
    reserved_rpc_url: Optional[str] = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_RESERVED_RPC_URL")
    )
    mainnet_rpc_url: Optional[str] = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_MAINNET_RPC_URL")
    )
    network_api_key: Optional[str] = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_NETWORK_API_KEY")
    )
    network_timeout_s: float = field(
        default_factory=lambda: get_env_float("AGGREGATOR_NETWORK_TIMEOUT_S", 3600.0)
    )

    # Binding policy
    claim_hash_policy: str = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_CLAIM_HASH_POLICY", "strict")
    )

    # Optional verification of the two input proofs
    verify_input_proofs: bool = field(
        default_factory=lambda: get_env_bool("AGGREGATOR_VERIFY_INPUT_PROOFS", False)
    )
    snarkjs_bin: str = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_SNARKJS_BIN", "snarkjs")
    )
    generation_vk_path: Optional[str] = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_GENERATION_VK")
    )
    social_vk_path: Optional[str] = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_SOCIAL_VK")
    )

    # Social settings the service imposes on every request
    verified_root: Optional[str] = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_SOCIAL_VERIFIED_ROOT")
    )
    min_verified_needed: Optional[int] = field(
        default_factory=lambda: get_env_int("AGGREGATOR_SOCIAL_MIN_VERIFIED_NEEDED")
    )

    # Observability and session handling
    dispatch_log_path: Optional[str] = field(
        default_factory=lambda: get_optional_env("AGGREGATOR_DISPATCH_LOG")
    )
    nonce_ttl_s: float = field(
        default_factory=lambda: get_env_float("AGGREGATOR_NONCE_TTL_S", 900.0)
    )
    prepare_on_startup: bool = field(
        default_factory=lambda: get_env_bool("AGGREGATOR_PREPARE_ON_STARTUP", False)
    )

    def validate(self) -> None:
        """Check cross-field consistency; raise ConfigError on the first problem."""
        if self.proof_mode not in PROOF_MODES:
            raise ConfigError(f"proof_mode must be one of {', '.join(PROOF_MODES)}, got {self.proof_mode!r}")
        if self.network not in BackendTarget.choices():
            raise ConfigError(
                f"network must be one of {', '.join(BackendTarget.choices())}, got {self.network!r}"
            )
        policy = self.resolved_policy()
        if policy is ClaimHashPolicy.RELAXED and is_strict_mode():
            raise ConfigError("relaxed claim-hash policy is not allowed when AGGREGATOR_STRICT=1")
        for name in ("prover_timeout_s", "network_timeout_s", "nonce_ttl_s"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.verify_input_proofs and not (self.generation_vk_path and self.social_vk_path):
            raise ConfigError(
                "verify_input_proofs requires generation_vk_path and social_vk_path"
            )
        if self.min_verified_needed is not None and not (
            MIN_SOCIAL_LEVEL <= self.min_verified_needed <= MAX_SOCIAL_LEVEL
        ):
            raise ConfigError(
                f"min_verified_needed must be within [{MIN_SOCIAL_LEVEL}, {MAX_SOCIAL_LEVEL}], "
                f"got {self.min_verified_needed}"
            )

    def social_config(self) -> Dict[str, Any]:
        """Verified root and threshold the service imposes on every request."""
        if not self.verified_root or self.min_verified_needed is None:
            raise ConfigError(
                "social settings are not configured "
                "(AGGREGATOR_SOCIAL_VERIFIED_ROOT, AGGREGATOR_SOCIAL_MIN_VERIFIED_NEEDED)"
            )
        return {
            "verified_root": self.verified_root,
            "min_verified_needed": self.min_verified_needed,
        }

    def resolved_policy(self) -> ClaimHashPolicy:
        try:
            return ClaimHashPolicy((self.claim_hash_policy or "").strip().lower())
        except ValueError as exc:
            raise ConfigError(
                f"claim_hash_policy must be 'strict' or 'relaxed', got {self.claim_hash_policy!r}"
            ) from exc

    def default_dispatch(self) -> Tuple[ExecuteOrProve, BackendTarget, ProofEncoding]:
        """Mode, target and encoding used when a caller does not choose."""
        target = BackendTarget.from_name(self.network)
        if self.proof_mode == "execute":
            return ExecuteOrProve.EXECUTE, BackendTarget.LOCAL, ProofEncoding.COMPRESSED
        return ExecuteOrProve.PROVE, target, ProofEncoding.from_name(self.proof_mode)

    def rpc_url_for(self, target: BackendTarget) -> Optional[str]:
        if target is BackendTarget.RESERVED:
            return self.reserved_rpc_url
        if target is BackendTarget.MAINNET:
            return self.mainnet_rpc_url
        return None

    def build_validator(self) -> BindingValidator:
        if not self.verify_input_proofs:
            return BindingValidator(policy=self.resolved_policy())
        return BindingValidator(
            policy=self.resolved_policy(),
            verifier=SnarkjsGroth16Verifier(self.snarkjs_bin),
            verifying_keys={
                "generation": Path(self.generation_vk_path),
                "social": Path(self.social_vk_path),
            },
        )

    def load_program(self) -> ProgramImage:
        if not self.program_path:
            raise ConfigError("program_path (AGGREGATOR_PROGRAM_PATH) is not configured")
        return ProgramImage.load(self.program_path, name=self.program_name)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data.get("network_api_key"):
            data["network_api_key"] = "***"
        return data


def load_config(path: Optional[Union[str, Path]] = None) -> AggregatorConfig:
    """Build a config from the environment, then apply a YAML file if given."""
    try:
        config = AggregatorConfig()
    except InvalidEnvironmentVariable as exc:
        raise ConfigError(str(exc)) from exc

    if path is not None:
        overrides = _read_yaml(Path(path))
        known = {f.name for f in fields(AggregatorConfig)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigError(f"unknown config keys in {path}: {', '.join(unknown)}")
        for key, value in overrides.items():
            setattr(config, key, _coerce(key, value, path))

    config.validate()
    return config


def _coerce(key: str, value: Any, path: Union[str, Path]) -> Any:
    if key in _FLOAT_FIELDS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{key} in {path} must be a number, got {value!r}")
        return float(value)
    if key in _INT_FIELDS:
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ConfigError(f"{key} in {path} must be an integer, got {value!r}")
        return value
    if key in _BOOL_FIELDS:
        if not isinstance(value, bool):
            raise ConfigError(f"{key} in {path} must be true or false, got {value!r}")
        return value
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"{key} in {path} must be a string, got {value!r}")
    return value


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data
