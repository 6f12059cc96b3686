"""
Neuroid Configuration: centralized defaults for learning and monitoring.

Provides a single ``NeuroidConfig`` dataclass holding the tuneable parameters
of the learning rules (supervised training, simulated annealing, competitive
training) plus the training event log.  Configuration can be loaded from a
dict of overrides, a JSON file, or left at the defaults.

Usage::

    from neuroid_config import load_neuroid_config

    # Defaults
    cfg = load_neuroid_config()

    # With overrides
    cfg = load_neuroid_config({"learning": {"learning_rate": 0.3}})

    # From JSON file
    cfg = load_neuroid_config(config_path="~/.neuroid/config.json")

    rule = BackPropagation(cfg.learning)
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("neuroid.config")


# ── Section dataclasses ────────────────────────────────────────────────


@dataclass
class LearningConfig:
    """Defaults shared by the iterative and supervised learning rules.

    ``max_iterations=None`` means unlimited.  ``min_error_change`` and
    ``min_error_change_iterations_limit`` only stop training when the limit
    is set.
    """

    learning_rate: float = 0.1
    momentum: float = 0.25
    max_error: float = 0.01
    max_iterations: Optional[int] = None
    min_error_change: float = math.inf
    min_error_change_iterations_limit: Optional[int] = None


@dataclass
class AnnealingConfig:
    """Temperature schedule for simulated annealing."""

    start_temperature: float = 10.0
    stop_temperature: float = 2.0
    cycles: int = 1000


@dataclass
class CompetitiveConfig:
    """Winner-take-all training and competition limits."""

    learning_rate: float = 0.1
    max_iterations: Optional[int] = 100
    competition_iterations: int = 100


@dataclass
class MonitoringConfig:
    """Training event log settings."""

    log_dir: str = "~/.neuroid/logs/"
    log_file: str = "training.log"
    max_log_size_mb: int = 10
    backup_count: int = 5
    level: str = "INFO"


# ── Top-level config ───────────────────────────────────────────────────


_SECTIONS = ("learning", "annealing", "competitive", "monitoring")


@dataclass
class NeuroidConfig:
    """Top-level configuration.

    Use ``load_neuroid_config()`` to create an instance with user overrides
    applied.
    """

    learning: LearningConfig = field(default_factory=LearningConfig)
    annealing: AnnealingConfig = field(default_factory=AnnealingConfig)
    competitive: CompetitiveConfig = field(default_factory=CompetitiveConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


# ── Factory ────────────────────────────────────────────────────────────


def _apply_overrides(obj: Any, overrides: Dict[str, Any]) -> None:
    """Apply a dict of overrides to a dataclass instance (in-place)."""
    for key, value in overrides.items():
        if hasattr(obj, key):
            setattr(obj, key, value)
        else:
            logger.warning("Ignoring unknown config key %s.%s", type(obj).__name__, key)


def load_neuroid_config(
    overrides: Optional[Dict[str, Any]] = None,
    config_path: Optional[str] = None,
) -> NeuroidConfig:
    """Create a ``NeuroidConfig`` with defaults, optionally overridden.

    Override precedence (highest wins):
        1. ``overrides`` dict argument
        2. ``config_path`` JSON file
        3. Built-in defaults

    Args:
        overrides: Dict keyed by section name (``learning``, ``annealing``,
            ``competitive``, ``monitoring``) whose values are dicts of
            field→value pairs.
        config_path: Path to a JSON file with the same structure as
            ``overrides``.  A missing or unreadable file is logged and
            skipped.

    Returns:
        Fully populated ``NeuroidConfig``.
    """
    cfg = NeuroidConfig()

    # Layer 1: JSON file
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            try:
                with open(p) as f:
                    file_data = json.load(f)
                for section in _SECTIONS:
                    if section in file_data:
                        _apply_overrides(getattr(cfg, section), file_data[section])
            except (OSError, ValueError) as exc:
                logger.warning("Failed to load neuroid config from %s: %s", p, exc)

    # Layer 2: dict overrides (win over file)
    if overrides is not None:
        for section in _SECTIONS:
            if section in overrides:
                _apply_overrides(getattr(cfg, section), overrides[section])

    return cfg
