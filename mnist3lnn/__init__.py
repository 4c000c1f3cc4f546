"""
mnist3lnn package
~~~~~~~~~~~~~~~~~

Simple 3-layer (input, hidden, output) feed-forward neural network with
sigmoid or tanh activation and back-propagation, used to classify MNIST
handwritten digit images. Contains the network engine, MNIST loading
utilities, a command line tool and an API server.
"""

__version__ = "1.0.0"

from mnist3lnn.config import ActivationType, LayerType, NetworkConfig
from mnist3lnn.exceptions import (
    ConfigurationError,
    DatasetError,
    InputSizeError,
    InvalidLabelError,
    NetworkError,
)
from mnist3lnn.network import Layer, Network, Node

__all__ = [
    'ActivationType',
    'ConfigurationError',
    'DatasetError',
    'InputSizeError',
    'InvalidLabelError',
    'Layer',
    'LayerType',
    'Network',
    'NetworkConfig',
    'NetworkError',
    'Node',
]
