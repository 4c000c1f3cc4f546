"""
network.py
~~~~~~~~~~

A 3-layer (INPUT, HIDDEN, OUTPUT) feed-forward neural network trained by
back-propagation, one sample at a time.

Each layer keeps its nodes in a numpy record array (see layout.py) whose
records hold a node's bias, its output and its incoming weights. Layers
are addressed by LayerType and nodes by their index within a layer.

Typical use:

    >>> net = Network(784, 20, 10, NetworkConfig(seed=1))
    >>> net.feed_input(vector)
    >>> net.feed_forward()
    >>> net.back_propagate(label)
    >>> net.classify()
"""

import logging
import numbers
from dataclasses import dataclass, replace
from typing import Iterator, Optional, Tuple

import numpy as np

from mnist3lnn.config import (
    ActivationType,
    LayerType,
    NetworkConfig,
    validate_learning_rate,
)
from mnist3lnn.exceptions import InputSizeError, InvalidLabelError
from mnist3lnn.initializer import init_weights, make_rng
from mnist3lnn.layout import REAL, LayerLayout, NetworkLayout

logger = logging.getLogger(__name__)


class Node:
    """
    A live view on one node record of a layer.

    Reading or assigning ``bias``, ``output`` or ``weights`` reads or
    writes the layer's storage directly.
    """

    __slots__ = ('_layer', '_index')

    def __init__(self, layer: 'Layer', index: int):
        self._layer = layer
        self._index = index

    def __repr__(self):
        return (
            f"<Node {self._layer.layer_type.name}[{self._index}] "
            f"bias={self.bias:.6f} output={self.output:.6f} "
            f"wcount={self.wcount}>"
        )

    @property
    def index(self) -> int:
        return self._index

    @property
    def bias(self) -> float:
        return float(self._layer.records['bias'][self._index])

    @bias.setter
    def bias(self, value: float) -> None:
        self._layer.records['bias'][self._index] = value

    @property
    def output(self) -> float:
        return float(self._layer.records['output'][self._index])

    @output.setter
    def output(self, value: float) -> None:
        self._layer.records['output'][self._index] = value

    @property
    def wcount(self) -> int:
        return int(self._layer.records['wcount'][self._index])

    @property
    def weights(self) -> np.ndarray:
        """Writable view of the node's incoming weights."""
        return self._layer.weights[self._index]

    @weights.setter
    def weights(self, values) -> None:
        self._layer.weights[self._index] = values


class Layer:
    """
    An ordered group of nodes that all share one weight count.

    Attributes:
        layout: Sizes of this layer (node count, weight count, strides)
        records: The layer's numpy record array, one record per node
    """

    def __init__(self, layout: LayerLayout, records: np.ndarray):
        self.layout = layout
        self.records = records

    def __repr__(self):
        return (
            f"<Layer {self.layer_type.name} ncount={len(self)} "
            f"wcount={self.weight_count}>"
        )

    def __len__(self) -> int:
        return self.layout.node_count

    def __iter__(self) -> Iterator[Node]:
        return (Node(self, i) for i in range(len(self)))

    def __getitem__(self, index: int) -> Node:
        return self.get_node(index)

    @property
    def layer_type(self) -> LayerType:
        return self.layout.layer_type

    @property
    def ncount(self) -> int:
        return self.layout.node_count

    @property
    def weight_count(self) -> int:
        return self.layout.weight_count

    @property
    def node_size(self) -> int:
        return self.layout.node_size

    def get_node(self, index: int) -> Node:
        """
        Return the node at a zero-based index.

        Raises:
            IndexError: If the index is negative or past the last node
        """
        if isinstance(index, bool) or not isinstance(index, numbers.Integral):
            raise TypeError(f"Node index must be an integer, got {index!r}")
        if not 0 <= index < len(self):
            raise IndexError(
                f"Node index {index} out of range for {self.layer_type.name} "
                f"layer with {len(self)} nodes"
            )
        return Node(self, int(index))

    @property
    def outputs(self) -> np.ndarray:
        """Writable view of all node outputs."""
        return self.records['output']

    @property
    def biases(self) -> np.ndarray:
        """Writable view of all node biases."""
        return self.records['bias']

    @property
    def weights(self) -> np.ndarray:
        """Writable (node_count, weight_count) view of all weights."""
        if self.weight_count == 0:
            return np.empty((len(self), 0), dtype=REAL)
        return self.records['weights']


@dataclass
class BackPropResult:
    """Error signals computed by one back-propagation step."""

    target: int
    output_errors: np.ndarray
    hidden_errors: np.ndarray


class Network:
    """
    Three-layer feed-forward network.

    Args:
        inp_count: Number of nodes in the INPUT layer
        hid_count: Number of nodes in the HIDDEN layer
        out_count: Number of nodes in the OUTPUT layer
        config: Learning rate, activations and seed (defaults if None)
        rng: Random source for weight initialization. Defaults to a numpy
            Generator seeded with ``config.seed``.

    Raises:
        ConfigurationError: If a layer size is not a positive integer
        MemoryError: If the layers cannot be allocated
    """

    def __init__(
        self,
        inp_count: int,
        hid_count: int,
        out_count: int,
        config: Optional[NetworkConfig] = None,
        rng=None
    ):
        self.config = replace(config) if config is not None else NetworkConfig()
        self.layout = NetworkLayout.from_counts(inp_count, hid_count, out_count)

        self.input_layer = self._create_layer(LayerType.INPUT)
        self.hidden_layer = self._create_layer(LayerType.HIDDEN)
        self.output_layer = self._create_layer(LayerType.OUTPUT)

        if rng is None:
            rng = make_rng(self.config.seed)
        init_weights(self.hidden_layer, rng)
        init_weights(self.output_layer, rng)

        logger.info(
            f"Created network {self.sizes}: hidden={self.hidden_activation.value}, "
            f"output={self.output_activation.value}, "
            f"learning_rate={self.learning_rate}, {self.nbytes} bytes"
        )

    def __repr__(self):
        return (
            f"<Network sizes={self.sizes} "
            f"hidden={self.hidden_activation.value} "
            f"output={self.output_activation.value} "
            f"learning_rate={self.learning_rate}>"
        )

    def _create_layer(self, layer_type: LayerType) -> Layer:
        return Layer(self.layout[layer_type], self.layout.allocate(layer_type))

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def sizes(self) -> Tuple[int, int, int]:
        return self.layout.sizes

    @property
    def nbytes(self) -> int:
        return self.layout.total_size

    @property
    def learning_rate(self) -> float:
        return self.config.learning_rate

    @learning_rate.setter
    def learning_rate(self, value: float) -> None:
        self.config.learning_rate = validate_learning_rate(value)

    @property
    def hidden_activation(self) -> ActivationType:
        return self.config.hidden_activation

    @hidden_activation.setter
    def hidden_activation(self, value) -> None:
        self.config.hidden_activation = ActivationType.parse(value)

    @property
    def output_activation(self) -> ActivationType:
        return self.config.output_activation

    @output_activation.setter
    def output_activation(self, value) -> None:
        self.config.output_activation = ActivationType.parse(value)

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    def get_layer(self, layer_type: LayerType) -> Layer:
        """Return the INPUT, HIDDEN or OUTPUT layer."""
        layer_type = LayerType(layer_type)
        if layer_type == LayerType.INPUT:
            return self.input_layer
        if layer_type == LayerType.HIDDEN:
            return self.hidden_layer
        return self.output_layer

    def get_node(self, layer_type: LayerType, index: int) -> Node:
        return self.get_layer(layer_type).get_node(index)

    def previous_layer(self, layer_type: LayerType) -> Layer:
        """Return the layer feeding into a HIDDEN or OUTPUT layer."""
        layer_type = LayerType(layer_type)
        if layer_type == LayerType.INPUT:
            raise ValueError("The input layer has no previous layer")
        return self.get_layer(LayerType(layer_type - 1))

    # ------------------------------------------------------------------
    # Forward propagation
    # ------------------------------------------------------------------

    def feed_input(self, vector) -> None:
        """
        Copy a vector into the outputs of the input layer nodes.

        Args:
            vector: Sequence of reals, one per input node

        Raises:
            InputSizeError: If the vector length differs from the input count
        """
        values = np.asarray(vector, dtype=REAL).reshape(-1)
        if values.size != len(self.input_layer):
            raise InputSizeError(
                f"Input vector has {values.size} values, network expects "
                f"{len(self.input_layer)}"
            )
        self.input_layer.outputs[:] = values

    def activate(self, layer_type: LayerType, values):
        """Apply the activation function configured for a layer."""
        if self.config.activation_for(layer_type) == ActivationType.TANH:
            return np.tanh(values)
        with np.errstate(over='ignore'):
            return 1.0 / (1.0 + np.exp(-values))

    def calc_layer(self, layer_type: LayerType) -> None:
        """
        Compute the outputs of a HIDDEN or OUTPUT layer from the outputs of
        the previous layer: bias plus weighted sum, then the activation.
        """
        layer = self.get_layer(layer_type)
        prev = self.previous_layer(layer_type)

        sums = layer.biases + layer.weights @ prev.outputs
        layer.outputs[:] = self.activate(layer_type, sums)

    def feed_forward(self) -> None:
        """Propagate the input layer values through the hidden and output layers."""
        self.calc_layer(LayerType.HIDDEN)
        self.calc_layer(LayerType.OUTPUT)

    # ------------------------------------------------------------------
    # Back propagation
    # ------------------------------------------------------------------

    def activation_derivative(self, layer_type: LayerType, output):
        """
        Return the activation derivative of a layer at an output value.

        Both forms are expressed in terms of the already activated output:
        tanh layers use 1 - tanh(output)**2, sigmoid layers output * (1 - output).
        """
        if self.config.activation_for(layer_type) == ActivationType.TANH:
            return 1 - np.tanh(output) ** 2
        return output * (1 - output)

    def update_node_weights(
        self,
        layer_type: LayerType,
        index: int,
        error: float
    ) -> None:
        """
        Adjust one node's weights and bias by a given error signal.

        weight[i] += learning_rate * prev[i].output * error
        bias      += learning_rate * error
        """
        node = self.get_node(layer_type, index)
        prev = self.previous_layer(layer_type)

        weights = node.weights
        weights += self.learning_rate * prev.outputs * error
        node.bias += self.learning_rate * error

    def update_layer_weights(self, layer_type: LayerType, errors) -> None:
        """Apply update_node_weights to every node of a layer at once."""
        layer = self.get_layer(layer_type)
        prev = self.previous_layer(layer_type)
        errors = np.asarray(errors, dtype=REAL)

        scaled = self.learning_rate * prev.outputs
        layer.weights[...] += scaled[np.newaxis, :] * errors[:, np.newaxis]
        layer.biases[...] += self.learning_rate * errors

    def _target_vector(self, target) -> np.ndarray:
        count = len(self.output_layer)
        if isinstance(target, bool) or not isinstance(target, numbers.Integral):
            raise InvalidLabelError(f"Target label must be an integer, got {target!r}")
        if not 0 <= target < count:
            raise InvalidLabelError(
                f"Target label {target} out of range [0, {count})"
            )
        targets = np.zeros(count, dtype=REAL)
        targets[int(target)] = 1.0
        return targets

    def back_propagate(self, target: int) -> BackPropResult:
        """
        Back propagate the error of the last forward pass and update weights.

        The output layer is processed first: its error signals are computed
        and its weights updated. The hidden layer error is then computed from
        the output error signals and the output weights. By default those are
        the already updated weights; with ``config.use_pre_update_weights``
        the output weights are snapshotted before the update instead.

        Args:
            target: Correct classification (label) of the fed input

        Returns:
            BackPropResult: The output and hidden error signals

        Raises:
            InvalidLabelError: If the label is not in [0, output count)
        """
        targets = self._target_vector(target)
        ol = self.output_layer
        hl = self.hidden_layer

        output_errors = (targets - ol.outputs) * self.activation_derivative(
            LayerType.OUTPUT, ol.outputs
        )

        if self.config.use_pre_update_weights:
            output_weights = ol.weights.copy()
            self.update_layer_weights(LayerType.OUTPUT, output_errors)
        else:
            self.update_layer_weights(LayerType.OUTPUT, output_errors)
            output_weights = ol.weights

        error_sums = output_weights.T @ output_errors
        hidden_errors = error_sums * self.activation_derivative(
            LayerType.HIDDEN, hl.outputs
        )
        self.update_layer_weights(LayerType.HIDDEN, hidden_errors)

        return BackPropResult(int(target), output_errors, hidden_errors)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self) -> int:
        """
        Return the index of the output node with the highest output.

        The running maximum starts at 0, so an output layer whose outputs
        are all <= 0 is classified as 0. On ties the lowest index wins.
        """
        max_out = 0.0
        max_ind = 0
        for i, value in enumerate(self.output_layer.outputs):
            if value > max_out:
                max_out = value
                max_ind = i
        return max_ind

    def predict(self, vector) -> int:
        """Feed a vector forward and return its classification."""
        self.feed_input(vector)
        self.feed_forward()
        return self.classify()

    def train_sample(self, vector, target: int) -> int:
        """
        Run one training step (feed, forward, back propagate) for a sample.

        Returns:
            int: The classification of the sample made by the forward pass
        """
        self.feed_input(vector)
        self.feed_forward()
        self.back_propagate(target)
        return self.classify()

    def describe(self):
        """Return a JSON-serializable summary of the network."""
        return {
            'sizes': list(self.sizes),
            'learning_rate': self.learning_rate,
            'hidden_activation': self.hidden_activation.value,
            'output_activation': self.output_activation.value,
            'use_pre_update_weights': self.config.use_pre_update_weights,
            'layout': self.layout.as_dict(),
        }
