"""
layout.py
~~~~~~~~~

Memory layout of a 3-layer network.

Each node is stored as a fixed-size numpy record (bias, output, weight
count and its incoming weights). Because the number of weights differs
per layer, so does the record size: the input layer has no weights, a
hidden node holds one weight per input node and an output node one weight
per hidden node. This module computes those record types, the per-node
stride, per-layer sizes and offsets, and allocates the record arrays.

Offsets are measured as if the three layers were placed back to back
after a network header (input, hidden, output), which is how the sizes
reported by ``Network.describe()`` are computed.
"""

import logging
import numbers
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from mnist3lnn.config import LayerType
from mnist3lnn.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

REAL = np.float64

# Fixed fields of every node record
NODE_HEADER_FIELDS = [
    ('bias', REAL),
    ('output', REAL),
    ('wcount', np.int32),
]

# A layer header holds its node count, padded to keep records aligned
LAYER_HEADER_SIZE = np.dtype(np.int64).itemsize

NETWORK_HEADER = np.dtype([
    ('inp_node_size', np.int32),
    ('inp_layer_size', np.int32),
    ('hid_node_size', np.int32),
    ('hid_layer_size', np.int32),
    ('out_node_size', np.int32),
    ('out_layer_size', np.int32),
    ('learning_rate', REAL),
    ('hid_activation', np.int32),
    ('out_activation', np.int32),
], align=True)

NETWORK_HEADER_SIZE = NETWORK_HEADER.itemsize


def node_dtype(weight_count: int) -> np.dtype:
    """
    Return the record type of a node with `weight_count` incoming weights.

    Args:
        weight_count: Number of weights (size of the previous layer)

    Returns:
        np.dtype: Aligned structured type; its itemsize is the node stride
    """
    fields = list(NODE_HEADER_FIELDS)
    if weight_count > 0:
        fields.append(('weights', REAL, (weight_count,)))
    return np.dtype(fields, align=True)


def _check_count(name: str, count) -> int:
    if isinstance(count, bool) or not isinstance(count, numbers.Integral):
        raise ConfigurationError(f"{name} must be an integer, got {count!r}")
    if count <= 0:
        raise ConfigurationError(f"{name} must be positive, got {count}")
    return int(count)


@dataclass(frozen=True)
class LayerLayout:
    """Sizes of one layer: its node count, weights per node and strides."""

    layer_type: LayerType
    node_count: int
    weight_count: int

    @property
    def dtype(self) -> np.dtype:
        return node_dtype(self.weight_count)

    @property
    def node_size(self) -> int:
        """Byte size of one node record (fixed fields plus its weights)."""
        return self.dtype.itemsize

    @property
    def layer_size(self) -> int:
        """Byte size of the whole layer (header plus all node records)."""
        return LAYER_HEADER_SIZE + self.node_count * self.node_size

    def as_dict(self) -> Dict[str, int]:
        return {
            'layer': self.layer_type.name,
            'node_count': self.node_count,
            'weight_count': self.weight_count,
            'node_size': self.node_size,
            'layer_size': self.layer_size,
        }


class NetworkLayout:
    """
    Layout of the three layers of a network.

    Built once from the three node counts and never changed afterwards;
    networks are not resizable.
    """

    def __init__(self, inp_count: int, hid_count: int, out_count: int):
        inp_count = _check_count('inp_count', inp_count)
        hid_count = _check_count('hid_count', hid_count)
        out_count = _check_count('out_count', out_count)

        self.layers: Tuple[LayerLayout, LayerLayout, LayerLayout] = (
            LayerLayout(LayerType.INPUT, inp_count, 0),
            LayerLayout(LayerType.HIDDEN, hid_count, inp_count),
            LayerLayout(LayerType.OUTPUT, out_count, hid_count),
        )

    @classmethod
    def from_counts(cls, inp_count: int, hid_count: int, out_count: int):
        return cls(inp_count, hid_count, out_count)

    def __repr__(self):
        counts = ", ".join(str(l.node_count) for l in self.layers)
        return f"<NetworkLayout ({counts}) total_size={self.total_size}>"

    def __getitem__(self, layer_type: LayerType) -> LayerLayout:
        return self.layers[LayerType(layer_type)]

    @property
    def sizes(self) -> Tuple[int, int, int]:
        """Node counts of the input, hidden and output layers."""
        return tuple(l.node_count for l in self.layers)

    @property
    def total_size(self) -> int:
        """Byte size of a network header plus all three layers."""
        return NETWORK_HEADER_SIZE + sum(l.layer_size for l in self.layers)

    def layer_offset(self, layer_type: LayerType) -> int:
        """
        Return the offset of a layer from the start of the layer region.

        The input layer is always at offset 0; each following layer starts
        where the previous one ends.
        """
        layer_type = LayerType(layer_type)
        return sum(l.layer_size for l in self.layers[:layer_type])

    def node_offset(self, layer_type: LayerType, index: int) -> int:
        """
        Return the offset of a node from the start of the layer region.

        Raises:
            IndexError: If `index` is not a valid node index of the layer
        """
        layer = self[layer_type]
        if not 0 <= index < layer.node_count:
            raise IndexError(
                f"Node index {index} out of range for {layer.layer_type.name} "
                f"layer with {layer.node_count} nodes"
            )
        return (
            self.layer_offset(layer_type) + LAYER_HEADER_SIZE
            + index * layer.node_size
        )

    def allocate(self, layer_type: LayerType) -> np.ndarray:
        """
        Allocate the zero-filled record array of one layer.

        Every node starts with bias 0, output 0 and zero weights, with its
        weight count set to the size of the previous layer.

        Raises:
            MemoryError: If the records cannot be allocated
        """
        layer = self[layer_type]
        try:
            records = np.zeros(layer.node_count, dtype=layer.dtype)
        except MemoryError:
            logger.error(
                f"Could not allocate {layer.layer_size} bytes for the "
                f"{layer.layer_type.name} layer"
            )
            raise
        records['wcount'] = layer.weight_count
        return records

    def as_dict(self) -> Dict[str, object]:
        return {
            'sizes': list(self.sizes),
            'header_size': NETWORK_HEADER_SIZE,
            'total_size': self.total_size,
            'layers': [
                dict(l.as_dict(), offset=self.layer_offset(l.layer_type))
                for l in self.layers
            ],
        }
