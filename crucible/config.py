"""
Session Configuration for Crucible.

Centralized configuration for a reasoning session:
- Support dynamics (birth, floor, ceiling, decay, thresholds)
- Scheduling cadence and gates
- Frontier pool sponsorship and aging
- Stagnation window and movement threshold
- Cost ceiling
- Generation and embedding endpoints

Supports environment variable overrides (CRUCIBLE_*) and YAML files.
"""

import os
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)


CLAIM_LOSS_POLICIES = ("resurrect", "stop")

DEFAULT_MODEL_POOL = ["llama3.2:3b", "qwen2.5:7b", "gemma3:4b"]


class ConfigValidationError(ValueError):
    """Raised when a configuration cannot drive a session."""

    def __init__(self, problems: List[str]):
        super().__init__("Invalid configuration: " + "; ".join(problems))
        self.problems = problems


@dataclass
class CrucibleConfig:
    """
    Configuration for one reasoning session.

    Attributes:
        seed_claim: Initial claim text (may also be passed to the runner directly)
        max_cycles: Hard upper bound on cycles run by a session

        birth_support: Support assigned to a freshly installed claim
        death_threshold: Claim dies when support falls to or below this
        graduation_threshold: Claim graduates when support reaches this
        decay_per_cycle: Support subtracted every cycle
        support_floor: Lower clamp for support
        support_ceiling: Upper clamp for support
        fallback_support: Support for a claim taken from an unsponsored frontier idea

        worker_timeout_s: Per-worker deadline for one cycle
        cancel_on_timeout: Cancel workers past the deadline instead of abandoning them

        analytical_interval: Analytical roles run every N cycles
        structural_interval: Structural roles run every N cycles
        history_min_cycle: Earliest cycle for trajectory-consulting roles
        low_support_threshold: Grave keeper runs below this support
        perturb_probability: Chance per cycle of a frontier pivot

        frontier_min_sponsors: Sponsors needed for an idea to become eligible
        frontier_max_age: Ideas older than this many cycles are dropped

        stagnation_window: Minimum trajectory points for a stagnation verdict
        stagnation_lookback: Trajectory points considered for stagnation
        movement_threshold: Average movement below this is stagnation

        novelty_bonus_enabled: Reward claims that move into new regions
        max_novelty_bonus: Largest bonus added to support in one cycle
        space_diameter: Distance that counts as fully novel

        change_similarity_threshold: Consecutive trajectory claims whose
            embeddings are at least this similar count as unchanged
        pivot_similarity_threshold: Changes below this similarity are pivots

        cost_limit_usd: Stop the session once spend reaches this (None = unlimited)
        on_claim_loss: "resurrect" (frontier replacement) or "stop"
    """

    seed_claim: Optional[str] = None
    max_cycles: int = 50

    # Support dynamics
    birth_support: float = 0.5
    death_threshold: float = 0.2
    graduation_threshold: float = 0.85
    decay_per_cycle: float = 0.02
    support_floor: float = 0.2
    support_ceiling: float = 0.9
    fallback_support: float = 0.4

    # Worker execution
    worker_timeout_s: float = 60.0
    cancel_on_timeout: bool = True

    # Scheduling
    analytical_interval: int = 3
    structural_interval: int = 5
    history_min_cycle: int = 5
    low_support_threshold: float = 0.4
    perturb_probability: float = 0.2

    # Frontier
    frontier_min_sponsors: int = 2
    frontier_max_age: int = 10

    # Stagnation
    stagnation_window: int = 5
    stagnation_lookback: int = 10
    movement_threshold: float = 0.1

    # Novelty
    novelty_bonus_enabled: bool = False
    max_novelty_bonus: float = 0.05
    space_diameter: float = 10.0

    # Claim evolution
    change_similarity_threshold: float = 0.95
    pivot_similarity_threshold: float = 0.6

    # Budget and lifecycle
    cost_limit_usd: Optional[float] = None
    on_claim_loss: str = "resurrect"

    # Generation
    model_pool: List[str] = field(default_factory=lambda: list(DEFAULT_MODEL_POOL))
    ollama_base_url: str = "http://localhost:11434"
    generation_timeout_s: float = 120.0
    generation_max_retries: int = 2
    temperature: float = 0.7
    embedding_model: str = "nomic-embed-text:latest"

    # Runtime
    store_dir: Optional[str] = None
    random_seed: Optional[int] = None

    @classmethod
    def from_env(cls) -> "CrucibleConfig":
        """
        Create configuration from environment variables.

        Environment variables:
            CRUCIBLE_MAX_CYCLES: int
            CRUCIBLE_DECAY: float
            CRUCIBLE_WORKER_TIMEOUT: seconds
            CRUCIBLE_CANCEL_ON_TIMEOUT: "true"/"false"
            CRUCIBLE_PERTURB_PROBABILITY: float 0.0-1.0
            CRUCIBLE_NOVELTY_BONUS: "true" to enable
            CRUCIBLE_COST_LIMIT: USD ceiling
            CRUCIBLE_ON_CLAIM_LOSS: resurrect | stop
            CRUCIBLE_MODELS: comma-separated model pool
            OLLAMA_BASE_URL: server URL
            CRUCIBLE_EMBEDDING_MODEL: model name
            CRUCIBLE_STORE_DIR: directory for JSONL persistence
            CRUCIBLE_SEED: random seed
        """
        def get_bool(key: str, default: bool) -> bool:
            val = os.environ.get(key, "").lower()
            if val in ("true", "1", "yes"):
                return True
            elif val in ("false", "0", "no"):
                return False
            return default

        def get_float(key: str, default: Optional[float]) -> Optional[float]:
            raw = os.environ.get(key)
            if raw is None or raw == "":
                return default
            try:
                return float(raw)
            except (ValueError, TypeError):
                return default

        def get_int(key: str, default: Optional[int]) -> Optional[int]:
            raw = os.environ.get(key)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except (ValueError, TypeError):
                return default

        def get_list(key: str, default: List[str]) -> List[str]:
            raw = os.environ.get(key, "")
            items = [item.strip() for item in raw.split(",") if item.strip()]
            return items or list(default)

        return cls(
            max_cycles=get_int("CRUCIBLE_MAX_CYCLES", 50),
            decay_per_cycle=get_float("CRUCIBLE_DECAY", 0.02),
            worker_timeout_s=get_float("CRUCIBLE_WORKER_TIMEOUT", 60.0),
            cancel_on_timeout=get_bool("CRUCIBLE_CANCEL_ON_TIMEOUT", True),
            perturb_probability=get_float("CRUCIBLE_PERTURB_PROBABILITY", 0.2),
            novelty_bonus_enabled=get_bool("CRUCIBLE_NOVELTY_BONUS", False),
            cost_limit_usd=get_float("CRUCIBLE_COST_LIMIT", None),
            on_claim_loss=os.environ.get("CRUCIBLE_ON_CLAIM_LOSS", "resurrect"),
            model_pool=get_list("CRUCIBLE_MODELS", DEFAULT_MODEL_POOL),
            ollama_base_url=os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434"),
            embedding_model=os.environ.get("CRUCIBLE_EMBEDDING_MODEL", "nomic-embed-text:latest"),
            store_dir=os.environ.get("CRUCIBLE_STORE_DIR") or None,
            random_seed=get_int("CRUCIBLE_SEED", None),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrucibleConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"[CONFIG] Ignoring unknown keys: {unknown}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "CrucibleConfig":
        """
        Load configuration from a YAML file.

        The file may either hold the fields at top level or under a
        ``crucible:`` key.
        """
        path = Path(path)
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if "crucible" in data and isinstance(data["crucible"], dict):
            data = data["crucible"]

        logger.info(f"[CONFIG] Loaded configuration from {path}")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[f.name] = list(value) if isinstance(value, list) else value
        return result

    def with_overrides(self, **overrides: Any) -> "CrucibleConfig":
        """Return a copy with the given non-None fields replaced."""
        data = self.to_dict()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return CrucibleConfig.from_dict(data)

    def validate(self) -> List[str]:
        """
        Check the configuration for values that cannot drive a session.

        Returns:
            List of problem descriptions (empty when valid)
        """
        problems = []

        if self.support_floor > self.support_ceiling:
            problems.append(
                f"support_floor {self.support_floor} exceeds support_ceiling {self.support_ceiling}"
            )
        if not (self.support_floor <= self.birth_support <= self.support_ceiling):
            problems.append(f"birth_support {self.birth_support} outside [floor, ceiling]")
        if not (self.support_floor <= self.death_threshold < self.graduation_threshold):
            problems.append(
                f"death_threshold {self.death_threshold} must lie in "
                f"[support_floor, graduation_threshold)"
            )
        if self.decay_per_cycle < 0:
            problems.append("decay_per_cycle must be non-negative")
        if self.max_cycles < 1:
            problems.append("max_cycles must be at least 1")
        if self.worker_timeout_s <= 0:
            problems.append("worker_timeout_s must be positive")
        if self.analytical_interval < 1 or self.structural_interval < 1:
            problems.append("scheduling intervals must be at least 1")
        if not 0.0 <= self.perturb_probability <= 1.0:
            problems.append("perturb_probability must be within [0, 1]")
        if self.frontier_min_sponsors < 1:
            problems.append("frontier_min_sponsors must be at least 1")
        if self.stagnation_window < 2:
            problems.append("stagnation_window needs at least 2 points")
        if self.stagnation_lookback < self.stagnation_window:
            problems.append("stagnation_lookback must be >= stagnation_window")
        if self.space_diameter <= 0:
            problems.append("space_diameter must be positive")
        if not -1.0 <= self.pivot_similarity_threshold <= self.change_similarity_threshold <= 1.0:
            problems.append(
                "claim change thresholds must satisfy "
                "-1 <= pivot_similarity_threshold <= change_similarity_threshold <= 1"
            )
        if self.cost_limit_usd is not None and self.cost_limit_usd <= 0:
            problems.append("cost_limit_usd must be positive when set")
        if self.on_claim_loss not in CLAIM_LOSS_POLICIES:
            problems.append(
                f"on_claim_loss must be one of {CLAIM_LOSS_POLICIES}, got {self.on_claim_loss!r}"
            )
        if not self.model_pool:
            problems.append("model_pool must name at least one model")

        return problems

    def validate_or_raise(self) -> None:
        """Raise ConfigValidationError when validate() reports problems."""
        problems = self.validate()
        if problems:
            raise ConfigValidationError(problems)


# Global config instance (lazy-loaded)
_config: Optional[CrucibleConfig] = None


def get_crucible_config(force_reload: bool = False) -> CrucibleConfig:
    """
    Get the global Crucible configuration.

    Lazily loads from environment on first access.

    Args:
        force_reload: If True, reload from environment

    Returns:
        CrucibleConfig instance
    """
    global _config

    if _config is None or force_reload:
        _config = CrucibleConfig.from_env()
        logger.debug(
            f"[CONFIG] Loaded: max_cycles={_config.max_cycles}, "
            f"cost_limit={_config.cost_limit_usd}, models={_config.model_pool}"
        )

    return _config


def reset_crucible_config() -> None:
    """Reset global config (for testing)."""
    global _config
    _config = None
