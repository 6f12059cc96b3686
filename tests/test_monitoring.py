"""Tests for training summaries and the rotating event log."""

import json
import sys
import os

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from neuroid_config import load_neuroid_config
from neuroid_data import DataSet
from neuroid_foundation import InputLayer, NetworkEventType, NeuralNetwork
from neuroid_monitoring import TrainingLogger, training_summary
from neuroid_networks import MultiLayerPerceptron


def _xor():
    ds = DataSet(2, 1, label="xor")
    for a, b in ((0, 0), (0, 1), (1, 0), (1, 1)):
        ds.add_row([a, b], [a ^ b])
    return ds


@pytest.fixture
def log_config(tmp_path):
    return load_neuroid_config({"monitoring": {"log_dir": str(tmp_path / "logs")}})


def _read_events(path):
    with open(path) as f:
        return [json.loads(line) for line in f if line.strip()]


class TestTrainingSummary:
    def test_untrained(self):
        net = MultiLayerPerceptron(2, 3, 1, label="XOR")
        summary = training_summary(net)
        assert summary.startswith("XOR: 3 layers")
        assert "8 neurons" in summary
        assert "13 connections" in summary
        assert "MomentumBackpropagation" in summary
        assert "ready" in summary
        assert "iterations" not in summary

    def test_after_training(self):
        net = MultiLayerPerceptron(2, 3, 1)
        net.learning_rule.max_iterations = 5
        net.learn(_xor())
        summary = training_summary(net)
        assert summary.startswith("MultiLayerPerceptron:")
        assert "5 iterations" in summary
        assert "error " in summary
        assert summary.endswith("stopped")


class TestTrainingLogger:
    def test_records_learning_events(self, log_config):
        net = MultiLayerPerceptron(2, 3, 1)
        net.randomize_weights(np.random.default_rng(3))
        net.learning_rule.max_iterations = 3

        log = TrainingLogger(log_config)
        log.attach(net)
        net.learn(_xor())
        log.close()

        events = _read_events(log.log_path)
        names = [e["event"] for e in events]
        assert names == ["learning_started", "epoch_ended", "epoch_ended", "epoch_ended", "learning_stopped"]
        assert events[0]["data"]["rows"] == 4
        assert events[0]["data"]["source"] == "MomentumBackpropagation"
        assert [e["data"]["iteration"] for e in events[1:4]] == [1, 2, 3]
        assert isinstance(events[1]["data"]["total_error"], float)
        assert all("timestamp" in e for e in events)

    def test_calculated_excluded_by_default(self, log_config):
        net = MultiLayerPerceptron(2, 2, 1)
        log = TrainingLogger(log_config)
        log.attach(net)
        net.set_input([0.0, 1.0])
        net.calculate()
        log.close()
        assert _read_events(log.log_path) == []

    def test_custom_event_types(self, log_config):
        net = MultiLayerPerceptron(2, 2, 1)
        log = TrainingLogger(log_config, event_types=[NetworkEventType.CALCULATED])
        log.attach(net)
        net.set_input([0.0, 1.0])
        net.calculate()
        log.close()
        assert [e["event"] for e in _read_events(log.log_path)] == ["calculated"]

    def test_detach_stops_recording(self, log_config):
        net = MultiLayerPerceptron(2, 2, 1)
        log = TrainingLogger(log_config)
        log.attach(net)
        log.detach(net)
        net.learning_rule.max_iterations = 1
        net.learn(_xor())
        log.close()
        assert _read_events(log.log_path) == []

    def test_log_event_direct(self, log_config):
        log = TrainingLogger(log_config)
        log.log_event("checkpoint", {"path": "/tmp/net.msgpack"})
        log.close()
        events = _read_events(log.log_path)
        assert events[0]["event"] == "checkpoint"
        assert events[0]["data"]["path"] == "/tmp/net.msgpack"

    def test_log_path_from_config(self, tmp_path):
        cfg = load_neuroid_config({"monitoring": {"log_dir": str(tmp_path), "log_file": "run.log"}})
        log = TrainingLogger(cfg)
        log.close()
        assert log.log_path == tmp_path / "run.log"
        assert log.log_path.exists()

    def test_loggers_are_isolated(self, tmp_path):
        log_a = TrainingLogger(load_neuroid_config({"monitoring": {"log_dir": str(tmp_path / "a")}}))
        log_b = TrainingLogger(load_neuroid_config({"monitoring": {"log_dir": str(tmp_path / "b")}}))
        net_a, net_b = NeuralNetwork(), NeuralNetwork()
        log_a.attach(net_a)
        log_b.attach(net_b)

        net_a.add_layer(InputLayer(1))
        log_a.close()
        log_b.close()

        assert [e["event"] for e in _read_events(log_a.log_path)] == ["layer_added"]
        assert _read_events(log_b.log_path) == []
