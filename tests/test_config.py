"""
test_config.py
~~~~~~~~~~~~~~

Unit tests for NetworkConfig defaults, validation and environment overrides.
"""

import pytest

from mnist3lnn.config import (
    DEFAULT_LEARNING_RATE,
    ActivationType,
    LayerType,
    NetworkConfig,
    validate_learning_rate,
)
from mnist3lnn.exceptions import ConfigurationError, NetworkError


@pytest.mark.unit
class TestActivationType:
    """Test parsing activation names."""

    @pytest.mark.parametrize('name,expected', [
        ('sigmoid', ActivationType.SIGMOID),
        ('TANH', ActivationType.TANH),
        (' Tanh ', ActivationType.TANH),
        (ActivationType.SIGMOID, ActivationType.SIGMOID),
    ])
    def test_parse(self, name, expected):
        """Test that names are matched case-insensitively."""
        assert ActivationType.parse(name) is expected

    @pytest.mark.parametrize('name', ['relu', '', None, 1])
    def test_parse_unknown(self, name):
        """Test that unknown activations raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            ActivationType.parse(name)


@pytest.mark.unit
class TestNetworkConfig:
    """Test the configuration dataclass."""

    def test_defaults(self):
        """Test the documented default values."""
        config = NetworkConfig()

        assert config.learning_rate == DEFAULT_LEARNING_RATE == 0.2
        assert config.hidden_activation is ActivationType.SIGMOID
        assert config.output_activation is ActivationType.SIGMOID
        assert config.use_pre_update_weights is False
        assert config.seed is None

    def test_activation_names_are_parsed(self):
        """Test that string activations are converted on construction."""
        config = NetworkConfig(hidden_activation='tanh', output_activation='SIGMOID')

        assert config.hidden_activation is ActivationType.TANH
        assert config.output_activation is ActivationType.SIGMOID

    def test_activation_for(self):
        """Test looking up the activation of each layer."""
        config = NetworkConfig(hidden_activation='tanh')

        assert config.activation_for(LayerType.HIDDEN) is ActivationType.TANH
        assert config.activation_for(LayerType.OUTPUT) is ActivationType.SIGMOID
        with pytest.raises(ConfigurationError):
            config.activation_for(LayerType.INPUT)

    @pytest.mark.parametrize('rate', [0, -1, float('nan'), float('inf'), None, True, '0.1'])
    def test_invalid_learning_rate(self, rate):
        """Test that unusable learning rates are rejected."""
        with pytest.raises(ConfigurationError):
            NetworkConfig(learning_rate=rate)

    def test_validate_learning_rate_returns_float(self):
        """Test that integer learning rates are accepted as floats."""
        value = validate_learning_rate(1)
        assert value == 1.0
        assert isinstance(value, float)

    def test_with_overrides_ignores_none(self):
        """Test that None overrides keep the current value."""
        config = NetworkConfig(learning_rate=0.1, seed=5)
        updated = config.with_overrides(learning_rate=None, seed=7,
                                        hidden_activation='tanh')

        assert updated.learning_rate == 0.1
        assert updated.seed == 7
        assert updated.hidden_activation is ActivationType.TANH
        assert config.seed == 5

    def test_with_overrides_validates(self):
        """Test that overridden values are validated."""
        with pytest.raises(ConfigurationError):
            NetworkConfig().with_overrides(learning_rate=-0.5)

    def test_configuration_error_is_value_error(self):
        """Test that configuration errors can be caught as ValueError too."""
        with pytest.raises(ValueError):
            NetworkConfig(learning_rate=0)
        assert issubclass(ConfigurationError, NetworkError)


@pytest.mark.unit
class TestFromEnv:
    """Test reading overrides from environment variables."""

    def test_empty_environment(self):
        """Test that no variables gives the defaults."""
        assert NetworkConfig.from_env({}) == NetworkConfig()

    def test_all_variables(self):
        """Test that each recognized variable is applied."""
        config = NetworkConfig.from_env({
            'MNIST3LNN_LEARNING_RATE': '0.004',
            'MNIST3LNN_SEED': '11',
            'MNIST3LNN_HIDDEN_ACTIVATION': 'tanh',
            'MNIST3LNN_OUTPUT_ACTIVATION': 'Tanh',
            'MNIST3LNN_PRE_UPDATE_WEIGHTS': 'yes',
        })

        assert config.learning_rate == 0.004
        assert config.seed == 11
        assert config.hidden_activation is ActivationType.TANH
        assert config.output_activation is ActivationType.TANH
        assert config.use_pre_update_weights is True

    def test_empty_values_are_ignored(self):
        """Test that variables set to an empty string are ignored."""
        config = NetworkConfig.from_env({'MNIST3LNN_LEARNING_RATE': ''})
        assert config.learning_rate == DEFAULT_LEARNING_RATE

    def test_reads_os_environ(self, monkeypatch):
        """Test that os.environ is used when no mapping is given."""
        monkeypatch.setenv('MNIST3LNN_SEED', '3')
        assert NetworkConfig.from_env().seed == 3

    @pytest.mark.parametrize('env', [
        {'MNIST3LNN_LEARNING_RATE': 'fast'},
        {'MNIST3LNN_LEARNING_RATE': '-1'},
        {'MNIST3LNN_SEED': 'abc'},
        {'MNIST3LNN_HIDDEN_ACTIVATION': 'relu'},
    ])
    def test_invalid_values(self, env):
        """Test that invalid variables raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            NetworkConfig.from_env(env)
