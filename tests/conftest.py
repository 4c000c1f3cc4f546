"""
conftest.py
~~~~~~~~~~~

Shared fixtures for the test suite.
"""

import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from mnist3lnn.config import NetworkConfig
from mnist3lnn.network import Network


class ConstantSource:
    """Random source that always returns the same value."""

    def __init__(self, value: float):
        self.value = value

    def random(self, size=None):
        if size is None:
            return self.value
        return np.full(size, self.value)


def write_idx(path, magic, array):
    """Write a uint8 array as an IDX file (gzip-compressed for .gz paths)."""
    import gzip

    array = np.asarray(array, dtype=np.uint8)
    header = np.array([magic] + list(array.shape), dtype='>u4').tobytes()
    opener = gzip.open if str(path).endswith('.gz') else open
    with opener(path, 'wb') as f:
        f.write(header + array.tobytes())


@pytest.fixture
def simple_network():
    """Create a small 4-3-2 network with a fixed seed."""
    return Network(4, 3, 2, NetworkConfig(seed=42))


@pytest.fixture
def separable_data():
    """
    All 16 binary vectors of length 4, labelled by their first bit.
    """
    vectors = np.array(
        [[(i >> b) & 1 for b in range(4)] for i in range(16)],
        dtype=float
    )
    labels = vectors[:, 0].astype(int)
    return vectors, labels


@pytest.fixture
def mnist_dir(tmp_path):
    """Directory with tiny MNIST-format training and testing files."""
    rng = np.random.default_rng(0)

    for prefix, count in (('train', 30), ('t10k', 12)):
        images = (rng.random((count, 28, 28)) > 0.7).astype(np.uint8) * 255
        labels = np.arange(count) % 10
        write_idx(tmp_path / f'{prefix}-images-idx3-ubyte', 2051, images)
        write_idx(tmp_path / f'{prefix}-labels-idx1-ubyte', 2049, labels)

    return tmp_path
