"""
cli.py
~~~~~~

Command line interface: trains a 3-layer network on the MNIST training set,
tests it on the MNIST testing set and reports accuracy and run time.

Usage:
    mnist3lnn run --data-dir data/
    mnist3lnn info --hidden 20
"""

import logging
import os
import time

import click
import numpy as np

from mnist3lnn import __version__
from mnist3lnn.config import ActivationType, NetworkConfig
from mnist3lnn.display import format_progress, render_image
from mnist3lnn.exceptions import NetworkError
from mnist3lnn.log import configure_logging
from mnist3lnn.mnist import (
    MNIST_IMG_HEIGHT,
    MNIST_IMG_WIDTH,
    image_to_vector,
    load_dataset,
)
from mnist3lnn.network import Network
from mnist3lnn.trainer import test_network, train_network

logger = logging.getLogger(__name__)

DEFAULT_HIDDEN_NODES = 20
DEFAULT_OUTPUT_NODES = 10
ACTIVATION_CHOICES = [a.value for a in ActivationType]


@click.group()
@click.version_option(version=__version__)
@click.option('--log-level', default=None, help='Log level (defaults to $LOG_LEVEL or INFO)')
def cli(log_level):
    """Simple 3-layer neural network for MNIST handwritten digits."""
    configure_logging(log_level)


def _network_options(f):
    options = [
        click.option('--hidden', 'hidden', type=click.IntRange(min=1),
                     default=DEFAULT_HIDDEN_NODES, show_default=True,
                     help='Number of hidden nodes'),
        click.option('--learning-rate', type=float, default=None,
                     help='Learning rate (default 0.2 or $MNIST3LNN_LEARNING_RATE)'),
        click.option('--hidden-activation', type=click.Choice(ACTIVATION_CHOICES),
                     default=None, help='Hidden layer activation'),
        click.option('--output-activation', type=click.Choice(ACTIVATION_CHOICES),
                     default=None, help='Output layer activation'),
        click.option('--seed', type=int, default=None,
                     help='Seed for weight initialization'),
        click.option('--pre-update-weights/--no-pre-update-weights', default=None,
                     help='Back propagate the hidden error through the output '
                          'weights as they were before the update'),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def _build_config(learning_rate, hidden_activation, output_activation,
                  seed, pre_update_weights) -> NetworkConfig:
    return NetworkConfig.from_env().with_overrides(
        learning_rate=learning_rate,
        hidden_activation=hidden_activation,
        output_activation=output_activation,
        seed=seed,
        use_pre_update_weights=pre_update_weights
    )


@cli.command()
@click.option('--data-dir', type=click.Path(file_okay=False),
              default=lambda: os.getenv('MNIST_DATA_DIR', 'data'),
              show_default='$MNIST_DATA_DIR or data',
              help='Directory holding the MNIST files')
@_network_options
@click.option('--epochs', type=click.IntRange(min=1), default=1, show_default=True)
@click.option('--limit-train', type=click.IntRange(min=1), default=None,
              help='Only use the first N training images')
@click.option('--limit-test', type=click.IntRange(min=1), default=None,
              help='Only use the first N testing images')
@click.option('--report-every', type=click.IntRange(min=1), default=1000,
              show_default=True, help='Progress line interval in images')
@click.option('--examples', type=click.IntRange(min=0), default=0,
              help='Render N random testing images with their classification')
def run(data_dir, hidden, learning_rate, hidden_activation, output_activation,
        seed, pre_update_weights, epochs, limit_train, limit_test,
        report_every, examples):
    """Train on the MNIST training set, then test on the testing set."""
    start_time = time.time()
    click.echo("    MNIST-3LNN: a simple 3-layer neural network processing "
               "the MNIST handwritten digit images\n")

    try:
        config = _build_config(learning_rate, hidden_activation,
                               output_activation, seed, pre_update_weights)
        train_images, train_labels = load_dataset(data_dir, 'train', limit_train)
        test_images, test_labels = load_dataset(data_dir, 'test', limit_test)

        nn = Network(MNIST_IMG_HEIGHT * MNIST_IMG_WIDTH, hidden,
                     DEFAULT_OUTPUT_NODES, config)

        def show(stats):
            click.echo(format_progress(stats))

        train_network(nn, train_images, train_labels, epochs=epochs,
                      callback=show, report_every=report_every)
        stats = test_network(nn, test_images, test_labels,
                             callback=show, report_every=report_every)
    except NetworkError as e:
        raise click.ClickException(str(e)) from e

    if examples:
        rng = np.random.default_rng(seed)
        count = min(examples, len(test_images))
        for index in rng.choice(len(test_images), size=count, replace=False):
            predicted = nn.predict(image_to_vector(test_images[index]))
            click.echo()
            click.echo(render_image(test_images[index], int(test_labels[index]), predicted))

    execution_time = time.time() - start_time
    click.echo(f"\n    Test accuracy: {stats.accuracy:.2%}")
    click.echo(f"    DONE! Total execution time: {execution_time:.1f} sec\n")


@cli.command()
@click.option('--inputs', type=click.IntRange(min=1),
              default=MNIST_IMG_HEIGHT * MNIST_IMG_WIDTH, show_default=True,
              help='Number of input nodes')
@click.option('--outputs', type=click.IntRange(min=1),
              default=DEFAULT_OUTPUT_NODES, show_default=True,
              help='Number of output nodes')
@_network_options
def info(inputs, outputs, hidden, learning_rate, hidden_activation,
         output_activation, seed, pre_update_weights):
    """Print the configuration and memory layout of a network."""
    try:
        config = _build_config(learning_rate, hidden_activation,
                               output_activation, seed, pre_update_weights)
        nn = Network(inputs, hidden, outputs, config)
    except NetworkError as e:
        raise click.ClickException(str(e)) from e

    summary = nn.describe()
    click.echo(f"Network {tuple(summary['sizes'])}")
    click.echo(f"  learning rate:     {summary['learning_rate']}")
    click.echo(f"  hidden activation: {summary['hidden_activation']}")
    click.echo(f"  output activation: {summary['output_activation']}")
    click.echo(f"  total size:        {summary['layout']['total_size']} bytes")
    click.echo()
    click.echo(f"  {'layer':<8}{'nodes':>8}{'weights':>9}{'node size':>11}"
               f"{'layer size':>12}{'offset':>10}")
    for layer in summary['layout']['layers']:
        click.echo(
            f"  {layer['layer']:<8}{layer['node_count']:>8}"
            f"{layer['weight_count']:>9}{layer['node_size']:>11}"
            f"{layer['layer_size']:>12}{layer['offset']:>10}"
        )


def main():
    cli()


if __name__ == '__main__':
    main()
