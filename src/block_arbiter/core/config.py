from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .errors import ConfigError
from .types import sha256_hex, stable_json

DEFAULT_CONTRACT = Path(__file__).resolve().parent.parent / "contracts" / "arbiter.yaml"

SOURCES = ("pocket", "continuation", "bucket")

XAX_PATTERNS = tuple(f"{n}A{n}" for n in range(2, 7))
ANTI_XAX_PATTERNS = tuple(f"Anti{n}A{n}" for n in range(2, 7))


@dataclass(frozen=True)
class LifecycleConfig:
    single_result_threshold: float = 70.0
    cumulative_threshold: float = 100.0


@dataclass(frozen=True)
class ContinuationConfig:
    activation_threshold: float = 140.0
    initial_life: Optional[float] = None   # None -> activation_threshold
    high_magnitude_threshold: float = 70.0
    consecutive_loss_pause_count: int = 1
    resume_consecutive_wins: int = 3
    resume_profit_floor: float = 100.0
    competing_patterns: Tuple[str, ...] = ("ZZ", "AntiZZ") + XAX_PATTERNS + ANTI_XAX_PATTERNS
    loss_clearing_patterns: Tuple[str, ...] = ("ZZ",)   # a real win here clears accumulated loss

    @property
    def life_budget(self) -> float:
        return self.activation_threshold if self.initial_life is None else self.initial_life


@dataclass(frozen=True)
class HostilityWeights:
    cascade: float = 3.0
    cross_pattern: float = 2.0
    opposite_sync: float = 4.0
    high_magnitude: float = 1.0
    high_magnitude_cluster: float = 3.0
    win_rate_collapse: float = 2.0


@dataclass(frozen=True)
class HostilityThresholds:
    caution: float = 10.0
    pause: float = 20.0
    extended_pause: float = 25.0


@dataclass(frozen=True)
class HostilityTriggers:
    cascade_losses: int = 3
    cross_pattern_window: int = 3
    cross_pattern_min: int = 2
    opposite_sync_window: int = 5
    high_magnitude: float = 90.0
    cluster_magnitude: float = 70.0
    cluster_count: int = 3
    cluster_window: int = 5
    win_rate_floor: float = 0.30
    win_rate_window: int = 10


@dataclass(frozen=True)
class HostilityDecay:
    per_win: float = 3.0
    per_idle_block: float = 0.5


@dataclass(frozen=True)
class HostilityConfig:
    weights: HostilityWeights = field(default_factory=HostilityWeights)
    thresholds: HostilityThresholds = field(default_factory=HostilityThresholds)
    triggers: HostilityTriggers = field(default_factory=HostilityTriggers)
    decay: HostilityDecay = field(default_factory=HostilityDecay)
    cooldown_blocks: int = 3
    exempt_patterns: Tuple[str, ...] = ("ZZ", "AntiZZ")


@dataclass(frozen=True)
class ArbitrationConfig:
    priority: Tuple[str, ...] = SOURCES
    allow_bucket_during_pause: bool = False


@dataclass(frozen=True)
class PauseConfig:
    """Drawdown-driven pauses. Amounts are positive magnitudes of real PnL."""
    enabled: bool = True
    stop_game_drawdown: float = 1000.0     # from the session PnL peak
    stop_game_actual_loss: float = 500.0   # below zero session PnL
    major_pause_interval: float = 300.0    # per-system drawdown milestone
    major_pause_blocks: int = 10
    minor_pause_losses: int = 2
    minor_pause_blocks: int = 3


@dataclass(frozen=True)
class ArbiterConfig:
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    continuation: ContinuationConfig = field(default_factory=ContinuationConfig)
    hostility: HostilityConfig = field(default_factory=HostilityConfig)
    arbitration: ArbitrationConfig = field(default_factory=ArbitrationConfig)
    pauses: PauseConfig = field(default_factory=PauseConfig)

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))

    @property
    def config_hash(self) -> str:
        return sha256_hex(stable_json(self.to_dict()))


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(v) for v in obj]
    return obj


def _require(condition: bool, msg: str) -> None:
    """Fail-closed helper for config validation."""
    if not condition:
        raise ConfigError(msg)


def _positive(value: Any, name: str) -> None:
    _require(isinstance(value, (int, float)) and not isinstance(value, bool), f"{name} must be numeric")
    _require(math.isfinite(value) and value > 0, f"{name} must be a finite positive number, got {value}")


def _section(cls, raw: Any, name: str, nested: Optional[Dict[str, Any]] = None):
    """Build a frozen config section from a mapping, rejecting unknown keys."""
    raw = raw or {}
    _require(isinstance(raw, dict), f"{name} must be a mapping")
    known = set(cls.__dataclass_fields__)
    unknown = sorted(set(raw) - known)
    _require(not unknown, f"{name}: unknown keys {unknown}")
    kwargs: Dict[str, Any] = {}
    for key, value in raw.items():
        if nested and key in nested:
            kwargs[key] = _section(nested[key], value, f"{name}.{key}")
        elif isinstance(value, list):
            kwargs[key] = tuple(value)
        else:
            kwargs[key] = value
    return cls(**kwargs)


def validate_config(cfg: ArbiterConfig) -> ArbiterConfig:
    lc = cfg.lifecycle
    _positive(lc.single_result_threshold, "lifecycle.single_result_threshold")
    _positive(lc.cumulative_threshold, "lifecycle.cumulative_threshold")

    cc = cfg.continuation
    _positive(cc.activation_threshold, "continuation.activation_threshold")
    _positive(cc.life_budget, "continuation.initial_life")
    _positive(cc.high_magnitude_threshold, "continuation.high_magnitude_threshold")
    _positive(cc.resume_profit_floor, "continuation.resume_profit_floor")
    _require(
        isinstance(cc.consecutive_loss_pause_count, int) and cc.consecutive_loss_pause_count >= 1,
        "continuation.consecutive_loss_pause_count must be an integer >= 1",
    )
    _require(
        isinstance(cc.resume_consecutive_wins, int) and cc.resume_consecutive_wins >= 1,
        "continuation.resume_consecutive_wins must be an integer >= 1",
    )
    _require(
        cc.resume_profit_floor < cc.activation_threshold,
        "continuation.resume_profit_floor must be below activation_threshold "
        f"(resume must be cheaper than re-activation): {cc.resume_profit_floor} >= {cc.activation_threshold}",
    )
    _require(len(cc.competing_patterns) > 0, "continuation.competing_patterns must not be empty")
    _known_patterns(cc.competing_patterns, "continuation.competing_patterns")
    _known_patterns(cc.loss_clearing_patterns, "continuation.loss_clearing_patterns")

    hc = cfg.hostility
    for name, value in asdict(hc.weights).items():
        _require(isinstance(value, (int, float)) and value >= 0, f"hostility.weights.{name} must be >= 0")
    th = hc.thresholds
    for name, value in asdict(th).items():
        _positive(value, f"hostility.thresholds.{name}")
    _require(
        th.caution < th.pause < th.extended_pause,
        f"hostility.thresholds must be strictly ascending: {th.caution}, {th.pause}, {th.extended_pause}",
    )
    tr = hc.triggers
    for name in ("cascade_losses", "cross_pattern_window", "cross_pattern_min", "opposite_sync_window",
                 "cluster_count", "cluster_window", "win_rate_window"):
        value = getattr(tr, name)
        _require(isinstance(value, int) and value >= 1, f"hostility.triggers.{name} must be an integer >= 1")
    _require(0.0 <= tr.win_rate_floor <= 1.0, "hostility.triggers.win_rate_floor must be within [0, 1]")
    _require(hc.decay.per_win >= 0 and hc.decay.per_idle_block >= 0, "hostility.decay values must be >= 0")
    _require(
        hc.decay.per_idle_block < hc.decay.per_win,
        f"hostility.decay.per_idle_block must be below per_win: {hc.decay.per_idle_block} >= {hc.decay.per_win}",
    )
    _known_patterns(hc.exempt_patterns, "hostility.exempt_patterns")
    _require(isinstance(hc.cooldown_blocks, int) and hc.cooldown_blocks >= 0, "hostility.cooldown_blocks must be >= 0")

    ac = cfg.arbitration
    _require(
        sorted(ac.priority) == sorted(SOURCES) and len(ac.priority) == len(SOURCES),
        f"arbitration.priority must be a permutation of {list(SOURCES)}, got {list(ac.priority)}",
    )

    pc = cfg.pauses
    _require(isinstance(pc.enabled, bool), "pauses.enabled must be a boolean")
    for name in ("stop_game_drawdown", "stop_game_actual_loss", "major_pause_interval"):
        _positive(getattr(pc, name), f"pauses.{name}")
    for name in ("major_pause_blocks", "minor_pause_losses", "minor_pause_blocks"):
        value = getattr(pc, name)
        _require(isinstance(value, int) and not isinstance(value, bool) and value >= 1,
                 f"pauses.{name} must be an integer >= 1")
    return cfg


def _known_patterns(names: Tuple[str, ...], field_name: str) -> None:
    # engines import this module, so the catalogue is resolved at call time
    from block_arbiter.engines.patterns import PATTERN_NAMES

    unknown = sorted(set(names) - set(PATTERN_NAMES))
    _require(not unknown, f"{field_name}: unknown patterns {unknown}")


def normalize_config(doc: Optional[Dict[str, Any]]) -> ArbiterConfig:
    """
    Normalize a raw config mapping into a validated ArbiterConfig.

    Missing sections or keys fall back to defaults; unknown keys are rejected.
    """
    doc = copy.deepcopy(doc or {})
    _require(isinstance(doc, dict), "config root must be a mapping")
    unknown = sorted(set(doc) - set(ArbiterConfig.__dataclass_fields__))
    _require(not unknown, f"unknown config sections {unknown}")
    cfg = ArbiterConfig(
        lifecycle=_section(LifecycleConfig, doc.get("lifecycle"), "lifecycle"),
        continuation=_section(ContinuationConfig, doc.get("continuation"), "continuation"),
        hostility=_section(
            HostilityConfig,
            doc.get("hostility"),
            "hostility",
            nested={
                "weights": HostilityWeights,
                "thresholds": HostilityThresholds,
                "triggers": HostilityTriggers,
                "decay": HostilityDecay,
            },
        ),
        arbitration=_section(ArbitrationConfig, doc.get("arbitration"), "arbitration"),
        pauses=_section(PauseConfig, doc.get("pauses"), "pauses"),
    )
    return validate_config(cfg)


def load_yaml_contract(path: str) -> Dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(path: Optional[str] = None) -> ArbiterConfig:
    """Load and validate the arbiter contract. Defaults to the bundled arbiter.yaml."""
    return normalize_config(load_yaml_contract(str(path or DEFAULT_CONTRACT)))
