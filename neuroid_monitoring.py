"""
Neuroid Monitoring: training summaries and a rotating JSON-lines event log.

Two monitoring layers:

1. ``training_summary()``: one-line description of a network and its
   training progress (e.g. "XOR: 3 layers, 8 neurons, 13 connections").
2. ``TrainingLogger``: subscribes to network events and writes them as
   JSON lines to ``~/.neuroid/logs/training.log`` with size-based rotation.

Usage::

    from neuroid_monitoring import TrainingLogger, training_summary

    log = TrainingLogger(load_neuroid_config())
    log.attach(network)
    network.learn(training_set)
    print(training_summary(network))
    log.close()
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from neuroid_config import NeuroidConfig
from neuroid_foundation import NetworkEvent, NetworkEventType, NeuralNetwork

logger = logging.getLogger("neuroid.monitoring")


# ── Summary (Layer 1) ──────────────────────────────────────────────────


def training_summary(network: NeuralNetwork) -> str:
    """Human-readable status of ``network`` and its learning rule."""
    neurons = sum(layer.neurons_count for layer in network.layers)
    parts = [
        f"{network.label or type(network).__name__}: {network.layers_count} layers",
        f"{neurons:,} neurons",
        f"{network.connections_count:,} connections",
    ]

    rule = network.learning_rule
    if rule is not None:
        parts.append(type(rule).__name__)
        iteration = getattr(rule, "current_iteration", 0)
        if iteration:
            parts.append(f"{iteration:,} iterations")
        error = getattr(rule, "total_network_error", None)
        if iteration and error is not None:
            parts.append(f"error {error:.6f}")
        parts.append(rule.state.name.lower())

    return ", ".join(parts)


# ── Rotating event log (Layer 2) ───────────────────────────────────────


# Fired on every forward pass; too chatty for the event log by default.
_QUIET_EVENTS = frozenset({NetworkEventType.CALCULATED})


class TrainingLogger:
    """Rotating file logger for network events.

    Writes structured JSON-line events with automatic rotation based on file
    size.

    Args:
        config: ``NeuroidConfig`` with monitoring parameters.
        event_types: Events to record; every event except ``CALCULATED``
            when omitted.
    """

    def __init__(
        self,
        config: Optional[NeuroidConfig] = None,
        event_types: Optional[Iterable[NetworkEventType]] = None,
    ) -> None:
        self._cfg = (config or NeuroidConfig()).monitoring
        self._event_types = (
            frozenset(event_types) if event_types is not None
            else frozenset(NetworkEventType) - _QUIET_EVENTS
        )
        # One logger per instance so each file only sees its own networks
        self._logger = logging.getLogger(f"neuroid.training.events.{id(self):x}")
        self._logger.propagate = False
        self._handler: Optional[logging.Handler] = None
        self._networks: List[NeuralNetwork] = []
        self._setup_handler()

    @property
    def log_path(self) -> Path:
        return Path(self._cfg.log_dir).expanduser() / self._cfg.log_file

    def _setup_handler(self) -> None:
        """Configure rotating file handler."""
        log_path = self.log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=self._cfg.max_log_size_mb * 1024 * 1024,
            backupCount=self._cfg.backup_count,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        self._logger.addHandler(handler)
        self._logger.setLevel(getattr(logging, str(self._cfg.level).upper(), logging.INFO))
        self._handler = handler

    def attach(self, network: NeuralNetwork) -> None:
        """Start recording events fired by ``network``."""
        network.register_event_handler(None, self.handle_event)
        self._networks.append(network)

    def detach(self, network: NeuralNetwork) -> None:
        network.unregister_event_handler(None, self.handle_event)
        self._networks = [n for n in self._networks if n is not network]

    def handle_event(self, event: NetworkEvent) -> None:
        if event.event_type not in self._event_types:
            return
        data: Dict[str, Any] = dict(event.data)
        data["source"] = type(event.source).__name__
        if event.subject is not None:
            data["subject"] = repr(event.subject)
        self.log_event(event.event_type.name.lower(), data)

    def log_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """Write a structured event to the training log."""
        event = {
            "timestamp": time.time(),
            "event": event_type,
            "data": data,
        }
        self._logger.info(json.dumps(event, default=str))

    def close(self) -> None:
        """Detach from all networks and release the log file."""
        for network in list(self._networks):
            self.detach(network)
        if self._handler is not None:
            self._logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None
