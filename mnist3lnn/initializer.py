"""
initializer.py
~~~~~~~~~~~~~~

Random initialization of connection weights and biases.

Weights are drawn as 0.7 * uniform(0, 1) and biases as uniform(0, 1).
Every odd-indexed weight within a node, and the bias of every
odd-indexed node within a layer, is negated so that roughly half of
the initial values are negative even though the source is non-negative.
"""

import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

WEIGHT_SCALE = 0.7


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Return a numpy random Generator seeded with `seed`."""
    return np.random.default_rng(seed)


def init_weights(layer, rng) -> None:
    """
    Initialize the weights and biases of a HIDDEN or OUTPUT layer in place.

    Nodes are visited in order; for each node its weights are drawn first
    and then its bias, so a given random source always yields the same
    network.

    Args:
        layer: The Layer to initialize (must have incoming weights)
        rng: Random source with a numpy Generator compatible
            ``random(size=None)`` method returning values in [0, 1)
    """
    if layer.weight_count == 0:
        raise ValueError(f"The {layer.layer_type.name} layer has no weights")

    signs = np.ones(layer.weight_count)
    signs[1::2] = -1.0

    for o, node in enumerate(layer):
        node.weights[:] = WEIGHT_SCALE * np.asarray(
            rng.random(layer.weight_count), dtype=float
        ) * signs

        bias = float(rng.random())
        node.bias = -bias if o % 2 else bias

    logger.debug(
        f"Initialized {len(layer)} x {layer.weight_count} weights of the "
        f"{layer.layer_type.name} layer"
    )
