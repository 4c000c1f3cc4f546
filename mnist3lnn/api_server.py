"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for 3-layer networks.

This module provides endpoints for:
- Creating and managing networks held in memory
- Training networks on MNIST with real-time progress updates via WebSockets
- Testing networks and classifying individual input vectors
- Rendering correctly and incorrectly classified digits

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for async background training tasks

Networks are not persisted: they are lost when the server stops.
"""

import os
import sys
import uuid
import base64
import logging
from io import BytesIO
from typing import Dict, Any, List, Optional, Tuple

import gevent
import numpy as np
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from mnist3lnn import mnist
from mnist3lnn.config import ActivationType, NetworkConfig
from mnist3lnn.exceptions import (
    ConfigurationError,
    DatasetError,
    InputSizeError,
)
from mnist3lnn.log import configure_logging
from mnist3lnn.network import Network
from mnist3lnn.trainer import RunStats, test_network, train_network

# ============================================================================
# LOGGING SETUP
# ============================================================================

configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})  # Allow requests from any origin

is_production = os.getenv('FLASK_ENV') == 'production'

# SocketIO enables real-time communication (WebSockets) for training updates
socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

DEFAULT_ARCHITECTURE = [mnist.MNIST_IMG_HEIGHT * mnist.MNIST_IMG_WIDTH, 20, 10]

# Images between two training_update events
REPORT_EVERY = 500

# Job statuses during which the network is being written to
ACTIVE_JOB_STATUSES = ('pending', 'training')

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}

# MNIST dataset - loaded on first use, then kept in memory
# Each is a tuple of (images, labels)
training_data: Optional[Tuple[np.ndarray, np.ndarray]] = None
test_data: Optional[Tuple[np.ndarray, np.ndarray]] = None


# ============================================================================
# DATA LOADING
# ============================================================================

def load_mnist_data(data_dir: Optional[str] = None) -> None:
    """
    Load the MNIST training and testing sets into global variables.

    Args:
        data_dir: Directory holding the MNIST files
            (defaults to $MNIST_DATA_DIR or 'data')

    Raises:
        DatasetError: If the files are missing or malformed
    """
    global training_data, test_data

    data_dir = data_dir or os.getenv('MNIST_DATA_DIR', 'data')
    logger.info(f"Loading MNIST data from {data_dir}...")

    training_data = mnist.load_dataset(data_dir, 'train')
    test_data = mnist.load_dataset(data_dir, 'test')

    logger.info(
        f"Data loaded: {len(training_data[1])} training, "
        f"{len(test_data[1])} test"
    )


def ensure_data_loaded() -> bool:
    """
    Load the MNIST data if it isn't loaded yet.

    Returns:
        bool: True if both data sets are available
    """
    if training_data is not None and test_data is not None:
        return True
    try:
        load_mnist_data()
    except DatasetError as e:
        logger.error(f"MNIST data not available: {e}")
        return False
    return True


def data_unavailable():
    return jsonify({'error': 'MNIST data not available'}), 503


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def array_to_float_list(array: np.ndarray) -> List[float]:
    """Convert a numpy array to a list of floats (for JSON serialization)."""
    return [float(val) for val in np.asarray(array).flatten()]


def network_summary(network_id: str) -> Dict[str, Any]:
    """Return the JSON description of an in-memory network."""
    info = active_networks[network_id]
    return {
        'network_id': network_id,
        'architecture': info['architecture'],
        'trained': info['trained'],
        'accuracy': info['accuracy'],
        'status': 'in_memory'
    }


def not_found():
    return jsonify({'error': 'Network not found'}), 404


def active_job_id(network_id: str) -> Optional[str]:
    """Return the id of the pending or running training job of a network."""
    for job_id, job in training_jobs.items():
        if job['network_id'] == network_id and job.get('status') in ACTIVE_JOB_STATUSES:
            return job_id
    return None


def network_busy(job_id: str):
    return jsonify({
        'error': 'Network is being trained',
        'job_id': job_id
    }), 409


def parse_network_request(data: Dict[str, Any]) -> Tuple[List[int], NetworkConfig]:
    """
    Validate a create-network request body.

    Returns:
        tuple: (layer_sizes, config)

    Raises:
        ConfigurationError: If any value is invalid
    """
    layer_sizes = data.get('layer_sizes', DEFAULT_ARCHITECTURE)

    # Exactly input, hidden and output layers
    if not isinstance(layer_sizes, list) or len(layer_sizes) != 3:
        raise ConfigurationError(
            'Invalid architecture. Must have exactly 3 layers '
            '(input, hidden, output).'
        )

    seed = data.get('seed')
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise ConfigurationError('seed must be an integer')

    pre_update = data.get('use_pre_update_weights', False)
    if not isinstance(pre_update, bool):
        raise ConfigurationError('use_pre_update_weights must be a boolean')

    config = NetworkConfig.from_env().with_overrides(
        learning_rate=data.get('learning_rate'),
        hidden_activation=data.get('hidden_activation'),
        output_activation=data.get('output_activation'),
        seed=seed,
        use_pre_update_weights=pre_update
    )
    return layer_sizes, config


def create_digit_image(image_data: np.ndarray, predicted: int, actual: int) -> str:
    """
    Create a base64-encoded PNG image of a digit.

    Args:
        image_data: Square image, as a 2-D array or flattened
        predicted: The digit the network predicted
        actual: The correct digit

    Returns:
        Base64-encoded PNG image string
    """
    pixels = np.asarray(image_data)
    if pixels.ndim == 1:
        side = int(round(np.sqrt(pixels.size)))
        pixels = pixels.reshape(side, -1)

    plt.figure(figsize=(3, 3))
    plt.imshow(pixels, cmap='gray')
    plt.title(f"Predicted: {predicted} | Actual: {actual}")
    plt.axis('off')

    # Save image to a bytes buffer instead of a file
    buffer = BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """
    Return server status and statistics.

    Returns counts of active networks and training jobs that are
    currently in progress (status='pending' or 'training').
    """
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in ACTIVE_JOB_STATUSES
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training,
        'data_loaded': training_data is not None and test_data is not None
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create a new network.

    Request body (all optional):
        {
            'layer_sizes': [784, 20, 10],
            'learning_rate': 0.2,
            'hidden_activation': 'sigmoid',
            'output_activation': 'sigmoid',
            'seed': 1,
            'use_pre_update_weights': false
        }

    Returns:
        JSON with network_id, architecture, configuration and status
    """
    data = request.get_json(silent=True) or {}

    try:
        layer_sizes, config = parse_network_request(data)
        net = Network(*layer_sizes, config=config)
    except ConfigurationError as e:
        logger.warning(f"Invalid network requested: {e}")
        return jsonify({'error': str(e)}), 400
    except MemoryError:
        logger.exception(f"Out of memory creating network {data.get('layer_sizes')}")
        return jsonify({'error': 'Failed to create network: out of memory'}), 500

    network_id = str(uuid.uuid4())
    active_networks[network_id] = {
        'network': net,
        'architecture': list(net.sizes),
        'trained': False,
        'accuracy': None
    }

    logger.info(f"Created network {network_id} with architecture {list(net.sizes)}")

    return jsonify({
        'network_id': network_id,
        'architecture': list(net.sizes),
        'config': net.describe(),
        'status': 'created'
    }), 201


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all networks held in memory."""
    networks = [network_summary(nid) for nid in active_networks]
    logger.debug(f"Listing networks: {len(networks)} in memory")
    return jsonify({'networks': networks}), 200


@app.route('/api/networks/<network_id>', methods=['GET'])
def get_network(network_id: str):
    """Return a network's summary, configuration and memory layout."""
    if network_id not in active_networks:
        return not_found()

    summary = network_summary(network_id)
    summary['config'] = active_networks[network_id]['network'].describe()
    return jsonify(summary), 200


@app.route('/api/networks/<network_id>', methods=['PATCH'])
def update_network(network_id: str):
    """
    Change a network's learning rate or activation functions.

    Request body (any subset):
        {'learning_rate': 0.1, 'hidden_activation': 'tanh',
         'output_activation': 'sigmoid'}
    """
    if network_id not in active_networks:
        return not_found()

    job_id = active_job_id(network_id)
    if job_id is not None:
        return network_busy(job_id)

    net = active_networks[network_id]['network']
    data = request.get_json(silent=True) or {}

    try:
        if 'learning_rate' in data:
            net.learning_rate = data['learning_rate']
        if 'hidden_activation' in data:
            net.hidden_activation = ActivationType.parse(data['hidden_activation'])
        if 'output_activation' in data:
            net.output_activation = ActivationType.parse(data['output_activation'])
    except ConfigurationError as e:
        return jsonify({'error': str(e)}), 400

    logger.info(f"Updated network {network_id}: {net!r}")
    return jsonify(net.describe()), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from memory."""
    if network_id not in active_networks:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return not_found()

    job_id = active_job_id(network_id)
    if job_id is not None:
        return network_busy(job_id)

    del active_networks[network_id]
    logger.info(f"Deleted network {network_id}")

    return jsonify({'network_id': network_id, 'deleted': True}), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete all networks from memory, except those being trained."""
    busy = [nid for nid in active_networks if active_job_id(nid) is not None]
    to_delete = [nid for nid in active_networks if nid not in busy]

    for network_id in to_delete:
        del active_networks[network_id]

    deleted_count = len(to_delete)
    logger.info(
        f"Deleted all networks: {deleted_count} total, {len(busy)} kept while training"
    )

    return jsonify({
        'deleted_count': deleted_count,
        'skipped_training': busy,
        'message': f'Successfully deleted {deleted_count} network(s)'
    }), 200


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network_endpoint(network_id: str):
    """
    Start training a network in the background.

    Request body (all optional):
        {
            'epochs': 1,
            'limit': 60000    # use only the first N training images
        }

    Returns:
        JSON with job_id, network_id, and status
    """
    if network_id not in active_networks:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return not_found()

    data = request.get_json(silent=True) or {}
    epochs = data.get('epochs', 1)
    limit = data.get('limit')

    if isinstance(epochs, bool) or not isinstance(epochs, int) or epochs < 1:
        return jsonify({'error': 'epochs must be a positive integer'}), 400
    if limit is not None and (
        isinstance(limit, bool) or not isinstance(limit, int) or limit < 1
    ):
        return jsonify({'error': 'limit must be a positive integer'}), 400

    running_job_id = active_job_id(network_id)
    if running_job_id is not None:
        logger.warning(
            f"Training requested for network {network_id} while job "
            f"{running_job_id} is running"
        )
        return network_busy(running_job_id)

    if not ensure_data_loaded():
        return data_unavailable()

    job_id = str(uuid.uuid4())

    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"epochs={epochs}, limit={limit}"
    )

    # Run training in background so we can return immediately
    socketio.start_background_task(
        train_network_task, network_id, job_id, epochs, limit
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    job_id: str,
    epochs: int,
    limit: Optional[int] = None
) -> None:
    """
    Background task that trains a network.

    Sends progress updates via WebSocket as training progresses.
    """

    def on_progress(stats: RunStats) -> None:
        """Called every REPORT_EVERY images to send progress updates."""
        done = (stats.epoch - 1) * stats.total + stats.image_count
        progress = done / (stats.total * stats.total_epochs) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress

        # Send update to connected clients via WebSocket
        socketio.emit('training_update', dict(
            stats.to_dict(),
            job_id=job_id,
            network_id=network_id,
            progress=progress
        ))

    try:
        info = active_networks.get(network_id)
        if info is None:
            raise LookupError(f"Network {network_id} was deleted before training started")
        net = info['network']

        images, labels = training_data
        if limit is not None:
            images, labels = images[:limit], labels[:limit]

        logger.info(f"Starting training for job {job_id}")

        # Define yield function for cooperative multitasking
        # This allows HTTP requests to be processed during training
        def yield_to_other_tasks():
            gevent.sleep(0)

        train_network(
            net, images, labels,
            epochs=epochs,
            callback=on_progress,
            report_every=REPORT_EVERY,
            yield_func=yield_to_other_tasks
        )

        # Measure accuracy on the testing set
        test_images, test_labels = test_data
        stats = test_network(
            net, test_images, test_labels,
            report_every=REPORT_EVERY,
            yield_func=yield_to_other_tasks
        )
        accuracy = stats.accuracy

        info['trained'] = True
        info['accuracy'] = accuracy

        training_jobs[job_id]['status'] = 'completed'
        training_jobs[job_id]['accuracy'] = accuracy
        training_jobs[job_id]['progress'] = 100

        logger.info(f"Training completed for job {job_id}: accuracy {accuracy:.2%}")

        # Notify clients that training is complete
        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'accuracy': float(accuracy),
            'progress': 100
        })
        gevent.sleep(0)

    except Exception as e:
        logger.exception(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return jsonify({'error': 'Training job not found'}), 404


@app.route('/api/training', methods=['DELETE'])
def cleanup_finished_training_jobs():
    """
    Remove completed or failed training jobs from memory.

    This prevents the training_jobs dictionary from growing indefinitely.
    Only removes jobs that are no longer active (completed or failed).
    """
    finished_statuses = {'completed', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in finished_statuses
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")

    return jsonify({'deleted_count': len(jobs_to_remove)}), 200


@app.route('/api/networks/<network_id>/test', methods=['POST'])
def test_network_endpoint(network_id: str):
    """
    Classify the MNIST testing set without updating weights.

    Request body (optional):
        {'limit': 10000}  # use only the first N testing images

    Returns:
        JSON with correct/incorrect counts and accuracy
    """
    if network_id not in active_networks:
        return not_found()

    data = request.get_json(silent=True) or {}
    limit = data.get('limit')
    if limit is not None and (
        isinstance(limit, bool) or not isinstance(limit, int) or limit < 1
    ):
        return jsonify({'error': 'limit must be a positive integer'}), 400

    if not ensure_data_loaded():
        return data_unavailable()

    images, labels = test_data
    if limit is not None:
        images, labels = images[:limit], labels[:limit]

    net = active_networks[network_id]['network']
    stats = test_network(net, images, labels)

    return jsonify(dict(stats.to_dict(), network_id=network_id)), 200


@app.route('/api/networks/<network_id>/classify', methods=['POST'])
def classify_endpoint(network_id: str):
    """
    Classify one input vector.

    Request body:
        {'vector': [0, 1, ...]}   # one value per input node

    Returns:
        JSON with the predicted class and the output layer values
    """
    if network_id not in active_networks:
        return not_found()

    data = request.get_json(silent=True) or {}
    vector = data.get('vector')
    if not isinstance(vector, list):
        return jsonify({'error': 'vector must be a list of numbers'}), 400

    try:
        values = np.asarray(vector, dtype=float)
    except (ValueError, TypeError) as e:
        return jsonify({'error': f'vector must be a list of numbers: {e}'}), 400

    # JSON null converts to NaN
    if not np.all(np.isfinite(values)):
        return jsonify({'error': 'vector must only hold finite numbers'}), 400

    net = active_networks[network_id]['network']
    try:
        predicted = net.predict(values)
    except InputSizeError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'network_id': network_id,
        'predicted_digit': predicted,
        'network_output': array_to_float_list(net.output_layer.outputs)
    }), 200


# ============================================================================
# EXAMPLE ENDPOINTS
# ============================================================================

def find_example(network_id: str, successful: bool, max_attempts: int):
    """
    Find a random testing image that the network classifies correctly
    (or incorrectly, if `successful` is False).
    """
    if network_id not in active_networks:
        logger.warning(f"Example requested for non-existent network: {network_id}")
        return not_found()

    if not ensure_data_loaded():
        return data_unavailable()

    net = active_networks[network_id]['network']
    images, labels = test_data

    for attempt in range(max_attempts):
        index = np.random.randint(0, len(labels))
        image = images[index]

        predicted_digit = net.predict(mnist.image_to_vector(image))
        actual_digit = int(labels[index])

        if (predicted_digit == actual_digit) == successful:
            logger.debug(f"Found example on attempt {attempt + 1}")

            return jsonify({
                'network_id': network_id,
                'example_index': int(index),
                'predicted_digit': predicted_digit,
                'actual_digit': actual_digit,
                'image_data': create_digit_image(image, predicted_digit, actual_digit),
                'output_weights': net.output_layer.weights.tolist(),
                'network_output': array_to_float_list(net.output_layer.outputs)
            }), 200

    kind = 'successful' if successful else 'unsuccessful'
    logger.warning(f"No {kind} example found after {max_attempts} attempts")
    return jsonify({
        'error': f'No {kind} example found after {max_attempts} attempts'
    }), 404


@app.route('/api/networks/<network_id>/successful_example', methods=['GET'])
def get_successful_example(network_id: str):
    """Return a random example where the network predicted correctly."""
    return find_example(network_id, successful=True, max_attempts=100)


@app.route('/api/networks/<network_id>/unsuccessful_example', methods=['GET'])
def get_unsuccessful_example(network_id: str):
    """Return a random example where the network predicted incorrectly."""
    return find_example(network_id, successful=False, max_attempts=200)


# ============================================================================
# SERVER STARTUP
# ============================================================================

def main() -> None:
    port = int(os.environ.get('PORT', 8000))
    logger.info(f"Starting server at http://localhost:{port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_production,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        else:
            raise


if __name__ == '__main__':
    main()
