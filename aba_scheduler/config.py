"""Engine configuration loading (YAML or JSON)."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from .domain.models import Program, Session

STRATEGY_NAMES = ("direct", "swap", "chain", "cross")


@dataclass(frozen=True)
class EngineConfig:
    """Immutable run parameters for the assignment engine."""

    max_passes: int = 3
    max_chain_depth: int = 3
    max_reshuffle_iterations: int = 20
    small_group_cap: int = 2
    pm_jitter: float = 0.5
    random_seed: int | None = None
    strategies: Tuple[str, ...] = STRATEGY_NAMES
    programs: Tuple[Program, ...] = (Program.PRIMARY, Program.SECONDARY)
    sessions: Tuple[Session, ...] = (Session.AM, Session.PM)

    def __post_init__(self) -> None:
        # Normalise list-like inputs coming from YAML/JSON
        object.__setattr__(self, "strategies", tuple(self.strategies))
        object.__setattr__(self, "programs", tuple(Program.parse(p) for p in self.programs))
        object.__setattr__(self, "sessions", tuple(Session.parse(s) for s in self.sessions))
        self.validate()

    def validate(self) -> None:
        if self.max_passes < 1:
            raise ValueError(f"max_passes must be >= 1, got {self.max_passes}")
        if self.max_chain_depth < 1:
            raise ValueError(f"max_chain_depth must be >= 1, got {self.max_chain_depth}")
        if self.max_reshuffle_iterations < 0:
            raise ValueError(
                f"max_reshuffle_iterations must be >= 0, got {self.max_reshuffle_iterations}"
            )
        if self.small_group_cap < 1:
            raise ValueError(f"small_group_cap must be >= 1, got {self.small_group_cap}")
        if self.pm_jitter < 0:
            raise ValueError(f"pm_jitter must be >= 0, got {self.pm_jitter}")
        unknown = [s for s in self.strategies if s not in STRATEGY_NAMES]
        if unknown:
            raise ValueError(f"Unknown reallocation strategies: {unknown}")


def config_from_dict(data: Dict[str, Any] | None) -> EngineConfig:
    """Build an EngineConfig from a plain mapping, rejecting unknown keys."""
    data = dict(data or {})
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {unknown}")
    return EngineConfig(**data)


def load_config(path: str | Path | None = None) -> EngineConfig:
    """
    Load engine configuration from a YAML or JSON file.

    Args:
        path: Path to a ``.yaml``/``.yml`` or ``.json`` file. ``None`` returns defaults.

    Returns:
        EngineConfig

    Raises:
        ValueError: If the file contains unknown keys or invalid values
    """
    if path is None:
        return EngineConfig()

    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)

    if data is not None and not isinstance(data, dict):
        raise ValueError(f"Configuration in {path} must be a mapping")

    # Allow the settings to live under an "engine" section
    if data and "engine" in data and isinstance(data["engine"], dict):
        data = data["engine"]

    return config_from_dict(data)
