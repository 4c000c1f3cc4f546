"""
config.py
~~~~~~~~~

Configuration for the 3-layer network: layer/activation enums and the
NetworkConfig defaults (learning rate, activation functions, random seed).

Every value has one documented default and can be overridden either
explicitly by the caller or through environment variables.
"""

import enum
import math
import os
import logging
from dataclasses import dataclass, replace
from typing import Optional, Mapping

from mnist3lnn.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Learning rate that gave ~91.5% MNIST accuracy with sigmoid layers
DEFAULT_LEARNING_RATE = 0.2

# Learning rate that gave ~78.0% MNIST accuracy with tanh layers
TANH_LEARNING_RATE = 0.004

ENV_PREFIX = 'MNIST3LNN_'


class LayerType(enum.IntEnum):
    """The three layers of the network, in memory and processing order."""

    INPUT = 0
    HIDDEN = 1
    OUTPUT = 2


class ActivationType(enum.Enum):
    """Activation functions available for the hidden and output layers."""

    SIGMOID = 'sigmoid'
    TANH = 'tanh'

    @classmethod
    def parse(cls, value) -> 'ActivationType':
        """
        Convert a name such as 'tanh' or 'SIGMOID' to an ActivationType.

        Args:
            value: ActivationType instance or its (case-insensitive) name

        Returns:
            ActivationType: The matching activation

        Raises:
            ConfigurationError: If the name is not a known activation
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ConfigurationError(
            f"Unknown activation {value!r}, expected one of "
            f"{[a.value for a in cls]}"
        )


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class NetworkConfig:
    """
    Tunable parameters of a network.

    Attributes:
        learning_rate: Factor by which connection weight changes are applied
        hidden_activation: Activation function of the hidden layer
        output_activation: Activation function of the output layer
        use_pre_update_weights: If True, the hidden layer error is computed
            against the output weights as they were before this sample's
            update. The default (False) reads the already updated weights.
        seed: Seed for the weight initializer (None for a random seed)
    """

    learning_rate: float = DEFAULT_LEARNING_RATE
    hidden_activation: ActivationType = ActivationType.SIGMOID
    output_activation: ActivationType = ActivationType.SIGMOID
    use_pre_update_weights: bool = False
    seed: Optional[int] = None

    def __post_init__(self):
        self.hidden_activation = ActivationType.parse(self.hidden_activation)
        self.output_activation = ActivationType.parse(self.output_activation)
        self.validate()

    def validate(self) -> None:
        """
        Check the configuration values.

        Raises:
            ConfigurationError: If the learning rate is not a positive,
                finite number
        """
        validate_learning_rate(self.learning_rate)

    def activation_for(self, layer_type: LayerType) -> ActivationType:
        """Return the activation configured for a HIDDEN or OUTPUT layer."""
        if layer_type == LayerType.HIDDEN:
            return self.hidden_activation
        if layer_type == LayerType.OUTPUT:
            return self.output_activation
        raise ConfigurationError("The input layer has no activation function")

    def with_overrides(self, **changes) -> 'NetworkConfig':
        """Return a copy with the given fields replaced (None values ignored)."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None
    ) -> 'NetworkConfig':
        """
        Build a configuration from MNIST3LNN_* environment variables.

        Recognized variables:
            MNIST3LNN_LEARNING_RATE, MNIST3LNN_HIDDEN_ACTIVATION,
            MNIST3LNN_OUTPUT_ACTIVATION, MNIST3LNN_SEED,
            MNIST3LNN_PRE_UPDATE_WEIGHTS

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            NetworkConfig: Defaults overridden by whatever variables are set

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        overrides = {}

        def get(name: str) -> Optional[str]:
            value = environ.get(ENV_PREFIX + name)
            return value if value not in (None, '') else None

        try:
            if get('LEARNING_RATE') is not None:
                overrides['learning_rate'] = float(get('LEARNING_RATE'))
            if get('SEED') is not None:
                overrides['seed'] = int(get('SEED'))
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment setting: {e}") from e

        if get('HIDDEN_ACTIVATION') is not None:
            overrides['hidden_activation'] = get('HIDDEN_ACTIVATION')
        if get('OUTPUT_ACTIVATION') is not None:
            overrides['output_activation'] = get('OUTPUT_ACTIVATION')
        if get('PRE_UPDATE_WEIGHTS') is not None:
            overrides['use_pre_update_weights'] = _parse_bool(
                get('PRE_UPDATE_WEIGHTS')
            )

        if overrides:
            logger.debug(f"Configuration overrides from environment: {overrides}")
        return cls(**overrides)


def validate_learning_rate(learning_rate) -> float:
    """
    Check that a learning rate is a positive, finite real number.

    Returns:
        float: The learning rate as a float

    Raises:
        ConfigurationError: If the value is not usable
    """
    if isinstance(learning_rate, bool) or not isinstance(learning_rate, (int, float)):
        raise ConfigurationError(
            f"learning_rate must be a number, got {learning_rate!r}"
        )
    if not math.isfinite(learning_rate) or learning_rate <= 0:
        raise ConfigurationError(
            f"learning_rate must be a positive finite number, got {learning_rate}"
        )
    return float(learning_rate)
