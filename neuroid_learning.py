"""
Neuroid Learning - Training loop, error functions, stop conditions and the
weight-update rules.

Rule hierarchy::

    LearningRule
      IterativeLearning                   epoch loop, pause/resume/stop
        SupervisedLearning                error function, error-based stops
          LMS
            BackPropagation
              MomentumBackpropagation
                ConvolutionalBackpropagation
            BinaryDeltaRule
          SupervisedHebbianLearning
            OutstarLearning
          SimulatedAnnealingLearning
        UnsupervisedLearning
          UnsupervisedHebbianLearning
          CompetitiveLearning
        KohonenLearning

Training runs in the calling thread (``NeuralNetwork.learn``) or on a
background thread (``NeuralNetwork.learn_in_new_thread``).  Control requests
from other threads go through one ``threading.Condition``: stop is honoured at
the next training-row or epoch boundary, pause blocks the learning thread at
such a boundary until resume or stop.
"""

from __future__ import annotations

import logging
import math
import threading
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from neuroid_config import AnnealingConfig, CompetitiveConfig, LearningConfig
from neuroid_foundation import (
    CompetitiveLayer,
    NetworkEvent,
    NetworkEventType,
    NeuralNetwork,
    Neuron,
    ThresholdNeuron,
    VectorSizeMismatchError,
    Weight,
)

logger = logging.getLogger("neuroid.learning")


# ---------------------------------------------------------------------------
# Error functions
# ---------------------------------------------------------------------------

class ErrorFunction:
    """Accumulates per-pattern errors into a total network error."""

    def reset(self) -> None:
        raise NotImplementedError

    @property
    def total_error(self) -> float:
        raise NotImplementedError

    def add_pattern_error(self, predicted: Sequence[float], target: Sequence[float]) -> np.ndarray:
        """Record one pattern and return its error vector (target - predicted)."""
        raise NotImplementedError

    @staticmethod
    def _pattern_error(predicted: Sequence[float], target: Sequence[float]) -> np.ndarray:
        predicted = np.asarray(predicted, dtype=np.float64).ravel()
        target = np.asarray(target, dtype=np.float64).ravel()
        if predicted.shape != target.shape:
            raise VectorSizeMismatchError(
                f"Network output size {predicted.shape[0]} does not match "
                f"desired output size {target.shape[0]}"
            )
        return target - predicted


class MeanSquaredError(ErrorFunction):
    """Sum of squared output errors over all patterns, divided by 2 * patterns."""

    def __init__(self) -> None:
        self._total = 0.0
        self._pattern_count = 0

    def reset(self) -> None:
        self._total = 0.0
        self._pattern_count = 0

    @property
    def total_error(self) -> float:
        if self._pattern_count == 0:
            return 0.0
        return self._total / (2.0 * self._pattern_count)

    def add_pattern_error(self, predicted: Sequence[float], target: Sequence[float]) -> np.ndarray:
        error = self._pattern_error(predicted, target)
        self._total += float(np.dot(error, error))
        self._pattern_count += 1
        return error


class MeanAbsoluteError(ErrorFunction):
    """Sum of absolute output errors over all patterns, divided by patterns."""

    def __init__(self) -> None:
        self._total = 0.0
        self._pattern_count = 0

    def reset(self) -> None:
        self._total = 0.0
        self._pattern_count = 0

    @property
    def total_error(self) -> float:
        if self._pattern_count == 0:
            return 0.0
        return self._total / self._pattern_count

    def add_pattern_error(self, predicted: Sequence[float], target: Sequence[float]) -> np.ndarray:
        error = self._pattern_error(predicted, target)
        self._total += float(np.sum(np.abs(error)))
        self._pattern_count += 1
        return error


# ---------------------------------------------------------------------------
# Stop conditions
# ---------------------------------------------------------------------------

class StopCondition:
    """Predicate checked after every epoch; any reached condition stops training."""

    def __init__(self, learning_rule: "IterativeLearning"):
        self.learning_rule = learning_rule

    def is_reached(self) -> bool:
        raise NotImplementedError


class MaxIterationsStop(StopCondition):
    def is_reached(self) -> bool:
        rule = self.learning_rule
        return rule.max_iterations is not None and rule.current_iteration >= rule.max_iterations


class MaxErrorStop(StopCondition):
    def is_reached(self) -> bool:
        return self.learning_rule.total_network_error < self.learning_rule.max_error


class SmallErrorChangeStop(StopCondition):
    def is_reached(self) -> bool:
        rule = self.learning_rule
        limit = rule.min_error_change_iterations_limit
        return limit is not None and rule.min_error_change_iterations_count >= limit


# ---------------------------------------------------------------------------
# Base rules
# ---------------------------------------------------------------------------

class LearningState(Enum):
    READY = auto()
    RUNNING = auto()
    PAUSED = auto()
    STOPPED = auto()


class LearningRule:
    """Base class binding a training procedure to one network.

    Subclasses list their persisted settings in ``_config_fields``; they are
    exposed through ``get_config`` / ``apply_config`` so a snapshot can
    restore the rule.
    """

    _config_fields: Tuple[str, ...] = ()

    def __init__(self) -> None:
        self.neural_network: Optional[NeuralNetwork] = None
        self.training_set: Any = None
        self._state = LearningState.READY
        self._state_changed = threading.Condition()
        self._active = False
        self._stop_pending = False

    def set_neural_network(self, network: NeuralNetwork) -> None:
        if network is None:
            raise ValueError("Neural network can't be None")
        self.neural_network = network

    def check_training_set(self, training_set: Any) -> None:
        """Raise ``ValueError`` if this rule cannot train on ``training_set``."""
        if training_set is None:
            raise ValueError("Training set can't be None")
        if self.neural_network is None:
            raise ValueError("Learning rule is not attached to a network")

    def learn(self, training_set: Any) -> None:
        raise NotImplementedError

    # --- control -----------------------------------------------------------

    @property
    def state(self) -> LearningState:
        with self._state_changed:
            return self._state

    def is_stopped(self) -> bool:
        return self.state is LearningState.STOPPED

    def begin(self) -> None:
        """Claim the rule for a run.

        A stop requested while no run was active ends this run before its
        first epoch.  Calling ``begin`` again before the run ends is a no-op,
        so a stop issued in between is kept.
        """
        with self._state_changed:
            if self._active:
                return
            self._active = True
            if self._stop_pending:
                self._stop_pending = False
                self._state = LearningState.STOPPED
            else:
                self._state = LearningState.RUNNING
            self._state_changed.notify_all()

    def _end_run(self) -> None:
        with self._state_changed:
            self._active = False
            self._state = LearningState.STOPPED
            self._state_changed.notify_all()

    def stop_learning(self) -> None:
        """Request a stop; also wakes a paused learning thread.

        Outside a run the request is held and cancels the next run.
        """
        with self._state_changed:
            if self._active:
                self._state = LearningState.STOPPED
            else:
                self._stop_pending = True
            self._state_changed.notify_all()

    def pause(self) -> None:
        """Only iterative rules honour pause."""

    def resume(self) -> None:
        """Only iterative rules honour resume."""

    # --- configuration -----------------------------------------------------

    def get_config(self) -> Dict[str, Any]:
        config = {}
        for name in self._config_fields:
            value = getattr(self, name)
            config[name] = list(value) if isinstance(value, tuple) else value
        return config

    def apply_config(self, config: Dict[str, Any]) -> None:
        for name, value in config.items():
            if name in self._config_fields:
                setattr(self, name, value)
            else:
                logger.warning("Ignoring unknown %s setting %r", type(self).__name__, name)

    def _fire(self, event_type: NetworkEventType, **data: Any) -> None:
        if self.neural_network is not None:
            self.neural_network.fire_network_event(NetworkEvent(event_type, source=self, data=data))


class IterativeLearning(LearningRule):
    """Epoch loop with a learning rate, iteration limit and stop conditions.

    Args:
        config: Rate and iteration limit; defaults from ``LearningConfig``.
    """

    _config_fields = ("learning_rate", "max_iterations")

    def __init__(self, config: Optional[LearningConfig] = None):
        super().__init__()
        cfg = config or LearningConfig()
        self.learning_rate: float = cfg.learning_rate
        self.max_iterations: Optional[int] = cfg.max_iterations
        self.current_iteration = 0
        self._user_stop_conditions: List[StopCondition] = []
        self._stop_conditions: List[StopCondition] = []

    @property
    def iterations_limited(self) -> bool:
        return self.max_iterations is not None

    def add_stop_condition(self, condition: StopCondition) -> None:
        if condition is None:
            raise ValueError("Stop condition can't be None")
        self._user_stop_conditions.append(condition)

    @property
    def stop_conditions(self) -> List[StopCondition]:
        return list(self._stop_conditions)

    def _default_stop_conditions(self) -> List[StopCondition]:
        if self.max_iterations is not None:
            return [MaxIterationsStop(self)]
        return []

    def has_reached_stop_condition(self) -> bool:
        return any(condition.is_reached() for condition in self._stop_conditions)

    # --- pause / resume ----------------------------------------------------

    def pause(self) -> None:
        with self._state_changed:
            if self._state is LearningState.RUNNING:
                self._state = LearningState.PAUSED
                self._state_changed.notify_all()

    def resume(self) -> None:
        with self._state_changed:
            if self._state is LearningState.PAUSED:
                self._state = LearningState.RUNNING
                self._state_changed.notify_all()

    def is_paused(self) -> bool:
        return self.state is LearningState.PAUSED

    def _wait_while_paused(self) -> None:
        with self._state_changed:
            while self._state is LearningState.PAUSED:
                self._state_changed.wait()

    def _can_continue(self) -> bool:
        """Block while paused; False once a stop has been requested."""
        self._wait_while_paused()
        return not self.is_stopped()

    # --- lifecycle hooks ---------------------------------------------------

    def on_start(self) -> None:
        self.current_iteration = 0
        self._stop_conditions = self._default_stop_conditions() + self._user_stop_conditions

    def on_stop(self) -> None:
        pass

    def before_epoch(self) -> None:
        pass

    def after_epoch(self) -> None:
        pass

    def do_learning_epoch(self, training_set: Any) -> None:
        raise NotImplementedError

    def _epoch_data(self) -> Dict[str, Any]:
        return {}

    # --- main loop ---------------------------------------------------------

    def learn(self, training_set: Any, max_iterations: Optional[int] = None) -> None:
        """Run epochs over ``training_set`` until a stop condition or request.

        Args:
            training_set: Iterable of training rows.
            max_iterations: Overrides the iteration limit for this and later
                runs.
        """
        self.check_training_set(training_set)
        if max_iterations is not None:
            self.max_iterations = max_iterations

        self.training_set = training_set
        self.begin()
        try:
            self.on_start()
            logger.info(
                "%s started on %d rows (rate=%s, max_iterations=%s)",
                type(self).__name__, len(training_set), self.learning_rate, self.max_iterations,
            )
            self._fire(NetworkEventType.LEARNING_STARTED, rule=type(self).__name__, rows=len(training_set))

            while not self.is_stopped():
                self.before_epoch()
                self.do_learning_epoch(training_set)
                self.after_epoch()
                self.current_iteration += 1
                self._fire(NetworkEventType.EPOCH_ENDED, iteration=self.current_iteration, **self._epoch_data())

                if self.has_reached_stop_condition():
                    self.stop_learning()
                self._wait_while_paused()
        finally:
            self._end_run()
            self.on_stop()
            logger.info(
                "%s stopped after %d iterations %s",
                type(self).__name__, self.current_iteration, self._epoch_data(),
            )
            self._fire(NetworkEventType.LEARNING_STOPPED, iteration=self.current_iteration, **self._epoch_data())


# ---------------------------------------------------------------------------
# Supervised rules
# ---------------------------------------------------------------------------

class SupervisedLearning(IterativeLearning):
    """Online supervised training: weights change after every row.

    Stops when the total network error drops below ``max_error``, when the
    error change stays below ``min_error_change`` for
    ``min_error_change_iterations_limit`` epochs, or at ``max_iterations``.
    """

    _config_fields = IterativeLearning._config_fields + (
        "max_error",
        "min_error_change",
        "min_error_change_iterations_limit",
    )

    def __init__(self, config: Optional[LearningConfig] = None):
        super().__init__(config)
        cfg = config or LearningConfig()
        self.max_error: float = cfg.max_error
        self.min_error_change: float = cfg.min_error_change
        self.min_error_change_iterations_limit: Optional[int] = cfg.min_error_change_iterations_limit
        self.min_error_change_iterations_count = 0
        self.error_function: ErrorFunction = MeanSquaredError()
        self.total_network_error = 0.0
        self.previous_epoch_error = 0.0

    def learn(
        self,
        training_set: Any,
        max_error: Optional[float] = None,
        max_iterations: Optional[int] = None,
    ) -> None:
        if max_error is not None:
            self.max_error = max_error
        super().learn(training_set, max_iterations)

    def check_training_set(self, training_set: Any) -> None:
        super().check_training_set(training_set)
        if not getattr(training_set, "is_supervised", True):
            raise ValueError("Supervised learning needs a training set with desired outputs")

    def _default_stop_conditions(self) -> List[StopCondition]:
        conditions = super()._default_stop_conditions()
        conditions.append(MaxErrorStop(self))
        if self.min_error_change_iterations_limit is not None:
            conditions.append(SmallErrorChangeStop(self))
        return conditions

    def on_start(self) -> None:
        super().on_start()
        self.min_error_change_iterations_count = 0
        self.total_network_error = 0.0
        self.previous_epoch_error = 0.0

    def before_epoch(self) -> None:
        self.error_function.reset()

    def do_learning_epoch(self, training_set: Any) -> None:
        for row in training_set:
            if not self._can_continue():
                break
            self.learn_pattern(row)

    def learn_pattern(self, row: Any) -> None:
        network = self.neural_network
        network.set_input(row.input)
        network.calculate()
        pattern_error = self.error_function.add_pattern_error(network.get_output(), row.desired_output)
        self.update_network_weights(pattern_error)

    def update_network_weights(self, output_error: np.ndarray) -> None:
        raise NotImplementedError

    def _epoch_error(self) -> float:
        return self.error_function.total_error

    def after_epoch(self) -> None:
        self.total_network_error = self._epoch_error()
        if abs(self.total_network_error - self.previous_epoch_error) < self.min_error_change:
            self.min_error_change_iterations_count += 1
        else:
            self.min_error_change_iterations_count = 0
        self.previous_epoch_error = self.total_network_error
        logger.debug("Epoch %d total error %.6f", self.current_iteration + 1, self.total_network_error)

    def _epoch_data(self) -> Dict[str, Any]:
        return {"total_error": self.total_network_error}


class LMS(SupervisedLearning):
    """Least mean squares: ``dw = rate * error * input`` on the output neurons."""

    def update_network_weights(self, output_error: np.ndarray) -> None:
        for neuron, error in zip(self.neural_network.output_neurons, output_error):
            neuron.error = float(error)
            self.update_neuron_weights(neuron)

    def update_neuron_weights(self, neuron: Neuron) -> None:
        for connection in neuron.input_connections:
            delta = self.learning_rate * neuron.error * connection.input
            self._apply_weight_change(connection.weight, delta)

    @staticmethod
    def _apply_weight_change(weight: Weight, delta: float) -> None:
        weight.weight_change = delta
        weight.value += delta


class BackPropagation(LMS):
    """Online backpropagation of output deltas through the hidden layers.

    Output deltas are ``error * f'(net)``; an output with exactly zero error
    is skipped.  Hidden layers are visited from last to first, each hidden
    delta is ``f'(net) * sum(downstream delta * weight)`` using the already
    updated downstream weights.
    """

    def update_network_weights(self, output_error: np.ndarray) -> None:
        self.calculate_error_and_update_output_neurons(output_error)
        self.calculate_error_and_update_hidden_neurons()

    def calculate_error_and_update_output_neurons(self, output_error: np.ndarray) -> None:
        for neuron, error in zip(self.neural_network.output_neurons, output_error):
            if error == 0.0:
                neuron.error = 0.0
                continue
            neuron.error = float(error) * neuron.transfer_function.derivative(neuron.net_input)
            self.update_neuron_weights(neuron)

    def _hidden_layers(self):
        layers = self.neural_network.layers
        return reversed(layers[1:-1])

    def calculate_error_and_update_hidden_neurons(self) -> None:
        for layer in self._hidden_layers():
            for neuron in layer:
                neuron.error = self.calculate_hidden_neuron_error(neuron)
                self.update_neuron_weights(neuron)

    def calculate_hidden_neuron_error(self, neuron: Neuron) -> float:
        delta_sum = 0.0
        for connection in neuron.output_connections:
            delta_sum += connection.to_neuron.error * connection.weight.value
        return neuron.transfer_function.derivative(neuron.net_input) * delta_sum


class MomentumBackpropagation(BackPropagation):
    """Backpropagation adding ``momentum`` times each weight's previous change."""

    _config_fields = BackPropagation._config_fields + ("momentum",)

    def __init__(self, config: Optional[LearningConfig] = None):
        super().__init__(config)
        self.momentum: float = (config or LearningConfig()).momentum

    def on_start(self) -> None:
        super().on_start()
        for connection in self.neural_network.iter_input_connections():
            connection.weight.weight_change = 0.0

    def update_neuron_weights(self, neuron: Neuron) -> None:
        for connection in neuron.input_connections:
            weight = connection.weight
            delta = (
                self.learning_rate * neuron.error * connection.input
                + self.momentum * weight.weight_change
            )
            self._apply_weight_change(weight, delta)


class ConvolutionalBackpropagation(MomentumBackpropagation):
    """Momentum backpropagation that leaves non-trainable layers alone.

    Pooling layers still pass deltas back to the layer before them, but
    their fixed weights are never updated.
    """

    def calculate_error_and_update_hidden_neurons(self) -> None:
        for layer in self._hidden_layers():
            for neuron in layer:
                neuron.error = self.calculate_hidden_neuron_error(neuron)
                if layer.trainable:
                    self.update_neuron_weights(neuron)


class BinaryDeltaRule(LMS):
    """Perceptron rule for step outputs; also moves threshold neurons' thresholds."""

    def update_network_weights(self, output_error: np.ndarray) -> None:
        for neuron, error in zip(self.neural_network.output_neurons, output_error):
            neuron.error = float(error)
            if error == 0.0:
                continue
            self.update_neuron_weights(neuron)
            if isinstance(neuron, ThresholdNeuron):
                neuron.thresh -= self.learning_rate * float(error)


class SupervisedHebbianLearning(SupervisedLearning):
    """Hebbian rule using the desired output: ``dw = rate * input * desired``."""

    def learn_pattern(self, row: Any) -> None:
        network = self.neural_network
        network.set_input(row.input)
        network.calculate()
        self.error_function.add_pattern_error(network.get_output(), row.desired_output)
        self.update_network_weights(np.asarray(row.desired_output, dtype=np.float64))

    def update_network_weights(self, desired_output: np.ndarray) -> None:
        for neuron, desired in zip(self.neural_network.output_neurons, desired_output):
            self.update_neuron_weights(neuron, float(desired))

    def update_neuron_weights(self, neuron: Neuron, desired_output: float) -> None:
        for connection in neuron.input_connections:
            connection.weight.value += self.learning_rate * connection.input * desired_output


class OutstarLearning(SupervisedHebbianLearning):
    """Outstar rule: weights move toward the desired output, ``dw = rate * input * (desired - w)``."""

    def update_neuron_weights(self, neuron: Neuron, desired_output: float) -> None:
        for connection in neuron.input_connections:
            weight = connection.weight
            weight.value += self.learning_rate * connection.input * (desired_output - weight.value)


class SimulatedAnnealingLearning(SupervisedLearning):
    """Gradient-free training by random weight perturbation.

    Each epoch starts from the best weights found so far and runs ``cycles``
    perturbation steps while the temperature falls geometrically from
    ``start_temperature`` to ``stop_temperature``.  A step keeps the new
    weights only if they lower the error; otherwise it rolls back.  The
    reported epoch error is the best error, so it never increases.

    Args:
        annealing: Temperature schedule.
        config: Error and iteration limits.
        rng: Generator for the perturbations.
    """

    _config_fields = SupervisedLearning._config_fields + (
        "start_temperature",
        "stop_temperature",
        "cycles",
    )

    def __init__(
        self,
        annealing: Optional[AnnealingConfig] = None,
        config: Optional[LearningConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        super().__init__(config)
        schedule = annealing or AnnealingConfig()
        self.start_temperature: float = schedule.start_temperature
        self.stop_temperature: float = schedule.stop_temperature
        self.cycles: int = schedule.cycles
        self.rng = rng if rng is not None else np.random.default_rng()
        self.temperature = self.start_temperature
        self.weights = np.zeros(0, dtype=np.float64)
        self.best_weights = np.zeros(0, dtype=np.float64)
        self.best_error = math.inf

    def on_start(self) -> None:
        super().on_start()
        self.weights = self.neural_network.get_weights()
        self.best_weights = self.weights.copy()
        self.best_error = math.inf
        self.temperature = self.start_temperature

    def _temperature_ratio(self) -> float:
        if self.cycles <= 1 or self.start_temperature <= 0 or self.stop_temperature <= 0:
            return 1.0
        return math.exp(math.log(self.stop_temperature / self.start_temperature) / (self.cycles - 1))

    def randomize(self) -> None:
        noise = (0.5 - self.rng.random(self.weights.shape[0])) / self.start_temperature * self.temperature
        self.weights += noise
        self.neural_network.set_weights(self.weights)

    def determine_error(self, training_set: Any) -> float:
        """Mean error of the current weights; partial if a stop lands mid-scan."""
        network = self.neural_network
        self.error_function.reset()
        for row in training_set:
            if self.is_stopped():
                break
            network.set_input(row.input)
            network.calculate()
            self.error_function.add_pattern_error(network.get_output(), row.desired_output)
        return self.error_function.total_error

    def do_learning_epoch(self, training_set: Any) -> None:
        self.best_weights[:] = self.weights
        best_error = self.determine_error(training_set)
        if self.is_stopped():
            return
        self.temperature = self.start_temperature
        ratio = self._temperature_ratio()

        for _ in range(self.cycles):
            if not self._can_continue():
                break
            self.randomize()
            current_error = self.determine_error(training_set)
            if current_error < best_error and not self.is_stopped():
                self.best_weights[:] = self.weights
                best_error = current_error
            else:
                self.weights[:] = self.best_weights
            self.neural_network.set_weights(self.best_weights)
            self.temperature *= ratio

        self.best_error = min(self.best_error, best_error)

    def update_network_weights(self, output_error: np.ndarray) -> None:
        pass

    def _epoch_error(self) -> float:
        # No full scan finished yet
        if math.isinf(self.best_error):
            return self.total_network_error
        return self.best_error


# ---------------------------------------------------------------------------
# Unsupervised rules
# ---------------------------------------------------------------------------

class UnsupervisedLearning(IterativeLearning):
    """Online training on input-only rows."""

    def do_learning_epoch(self, training_set: Any) -> None:
        for row in training_set:
            if not self._can_continue():
                break
            self.learn_pattern(row)

    def learn_pattern(self, row: Any) -> None:
        network = self.neural_network
        network.set_input(row.input)
        network.calculate()
        self.update_network_weights()

    def update_network_weights(self) -> None:
        raise NotImplementedError


class UnsupervisedHebbianLearning(UnsupervisedLearning):
    """``dw = rate * input * output`` on the output neurons."""

    def update_network_weights(self) -> None:
        for neuron in self.neural_network.output_neurons:
            self.update_neuron_weights(neuron)

    def update_neuron_weights(self, neuron: Neuron) -> None:
        output = neuron.output
        for connection in neuron.input_connections:
            connection.weight.value += self.learning_rate * connection.input * output


class CompetitiveLearning(UnsupervisedLearning):
    """Winner-take-all: only the winner's external weights move toward the input.

    Args:
        config: Learning rate and iteration limit; defaults from
            ``CompetitiveConfig``.
    """

    def __init__(self, config: Optional[CompetitiveConfig] = None):
        cfg = config or CompetitiveConfig()
        super().__init__(LearningConfig(learning_rate=cfg.learning_rate, max_iterations=cfg.max_iterations))

    def learn_pattern(self, row: Any) -> None:
        network = self.neural_network
        network.set_input(row.input)
        network.calculate()
        self.adjust_winner_weights()
        network.reset()

    def _competitive_layer(self) -> CompetitiveLayer:
        for layer in self.neural_network.layers:
            if isinstance(layer, CompetitiveLayer):
                return layer
        raise ValueError("Network has no competitive layer")

    def adjust_winner_weights(self) -> None:
        winner = self._competitive_layer().winner
        if winner is None:
            return
        for connection in winner.connections_from_other_layers:
            weight = connection.weight
            weight.value += self.learning_rate * (connection.input - weight.value)

    def update_network_weights(self) -> None:
        self.adjust_winner_weights()


class KohonenLearning(IterativeLearning):
    """Self-organizing map training.

    The map layer (second layer) is treated as a square grid in row-major
    order.  Training runs in phases; phase ``i`` lasts ``phase_iterations[i]``
    epochs with neighborhood radius ``neighborhoods[i]``.  The winner is the
    map neuron with the smallest output (distance); it moves toward the input
    by ``rate``, its grid neighbors by ``rate / 2``.  The learning rate
    decays linearly to a tenth of its initial value over the run and is
    restored when training stops.
    """

    _config_fields = ("learning_rate", "phase_iterations", "neighborhoods")

    def __init__(
        self,
        learning_rate: float = 0.9,
        phase_iterations: Sequence[int] = (100, 0),
        neighborhoods: Sequence[int] = (1, 1),
    ):
        super().__init__(LearningConfig(learning_rate=learning_rate))
        if len(phase_iterations) != len(neighborhoods):
            raise ValueError("phase_iterations and neighborhoods must have the same length")
        self.phase_iterations = list(phase_iterations)
        self.neighborhoods = list(neighborhoods)
        self.max_iterations = sum(self.phase_iterations)
        self._initial_learning_rate = learning_rate

    def on_start(self) -> None:
        self.max_iterations = sum(self.phase_iterations)
        self._initial_learning_rate = self.learning_rate
        super().on_start()

    def on_stop(self) -> None:
        self.learning_rate = self._initial_learning_rate

    def current_neighborhood(self) -> int:
        boundary = 0
        for iterations, radius in zip(self.phase_iterations, self.neighborhoods):
            boundary += iterations
            if self.current_iteration < boundary:
                return radius
        return self.neighborhoods[-1] if self.neighborhoods else 0

    def before_epoch(self) -> None:
        if self.max_iterations:
            progress = self.current_iteration / self.max_iterations
            self.learning_rate = self._initial_learning_rate * (1.0 - 0.9 * progress)

    def do_learning_epoch(self, training_set: Any) -> None:
        radius = self.current_neighborhood()
        for row in training_set:
            if not self._can_continue():
                break
            self.learn_pattern(row, radius)

    def learn_pattern(self, row: Any, radius: int) -> None:
        network = self.neural_network
        network.set_input(row.input)
        network.calculate()

        map_neurons = network.get_layer_at(1).neurons
        if not map_neurons:
            return
        winner_index = int(np.argmin([n.output for n in map_neurons]))
        winner = map_neurons[winner_index]
        if winner.output == 0.0:
            return

        self.adjust_cell_weights(winner, 0)
        width = max(1, math.ceil(math.sqrt(len(map_neurons))))
        for index, cell in enumerate(map_neurons):
            if index != winner_index and self.is_neighbor(winner_index, index, radius, width):
                self.adjust_cell_weights(cell, 1)

    @staticmethod
    def is_neighbor(index_a: int, index_b: int, radius: int, width: int) -> bool:
        row_a, col_a = divmod(index_a, width)
        row_b, col_b = divmod(index_b, width)
        return max(abs(row_a - row_b), abs(col_a - col_b)) <= radius

    def adjust_cell_weights(self, cell: Neuron, distance: int) -> None:
        rate = self.learning_rate / (distance + 1)
        for connection in cell.input_connections:
            weight = connection.weight
            weight.value += rate * (connection.input - weight.value)
