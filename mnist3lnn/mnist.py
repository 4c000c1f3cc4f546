"""
mnist.py
~~~~~~~~

Loading of the MNIST handwritten digit database.

Reads the original IDX files (optionally gzip-compressed) or the single
compressed `mnist.npz` cache written by scripts/convert_idx_to_npz.py, and
converts images into the input vectors fed to the network.

See http://yann.lecun.com/exdb/mnist/ for the file format.
"""

import gzip
import logging
import os
import zipfile
from typing import Optional, Tuple

import numpy as np

from mnist3lnn.exceptions import DatasetError

logger = logging.getLogger(__name__)

MNIST_IMG_WIDTH = 28
MNIST_IMG_HEIGHT = 28

IMAGE_MAGIC = 2051
LABEL_MAGIC = 2049

MNIST_FILES = {
    'train': ('train-images-idx3-ubyte', 'train-labels-idx1-ubyte'),
    'test': ('t10k-images-idx3-ubyte', 't10k-labels-idx1-ubyte'),
}

NPZ_FILENAME = 'mnist.npz'

# Big-endian 32-bit unsigned integers used in IDX headers
_HEADER_INT = np.dtype('>u4')


def _open(path: str):
    if path.endswith('.gz'):
        return gzip.open(path, 'rb')
    return open(path, 'rb')


def _read_idx(path: str, magic: int, ndims: int) -> np.ndarray:
    """
    Read an IDX file of unsigned bytes.

    Args:
        path: Path to the (possibly .gz) file
        magic: Expected magic number
        ndims: Number of dimensions following the magic number

    Returns:
        np.ndarray: uint8 array shaped by the header dimensions

    Raises:
        DatasetError: If the file is missing, has the wrong magic number or
            is shorter than its header announces
    """
    if not os.path.exists(path):
        raise DatasetError(f"MNIST file not found: {path}")

    try:
        with _open(path) as f:
            raw = f.read()
    except OSError as e:
        raise DatasetError(f"Could not read MNIST file {path}: {e}") from e

    header_size = (1 + ndims) * _HEADER_INT.itemsize
    if len(raw) < header_size:
        raise DatasetError(f"{path} is too short to hold an IDX header")

    header = np.frombuffer(raw, dtype=_HEADER_INT, count=1 + ndims)
    if int(header[0]) != magic:
        raise DatasetError(
            f"{path} has magic number {int(header[0])}, expected {magic}"
        )

    shape = tuple(int(d) for d in header[1:])
    expected = int(np.prod(shape))
    data = np.frombuffer(raw, dtype=np.uint8, offset=header_size)
    if data.size < expected:
        raise DatasetError(
            f"{path} is truncated: expected {expected} bytes of data, "
            f"found {data.size}"
        )

    return data[:expected].reshape(shape)


def read_idx_images(path: str) -> np.ndarray:
    """Read an IDX image file into a (count, rows, cols) uint8 array."""
    images = _read_idx(path, IMAGE_MAGIC, 3)
    logger.debug(f"Read {len(images)} images from {path}")
    return images


def read_idx_labels(path: str) -> np.ndarray:
    """Read an IDX label file into a (count,) uint8 array."""
    labels = _read_idx(path, LABEL_MAGIC, 1)
    logger.debug(f"Read {len(labels)} labels from {path}")
    return labels


def _find(data_dir: str, filename: str) -> Optional[str]:
    for candidate in (filename, filename + '.gz'):
        path = os.path.join(data_dir, candidate)
        if os.path.exists(path):
            return path
    return None


def load_dataset(
    data_dir: str,
    kind: str = 'train',
    limit: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load the MNIST training or testing set.

    The IDX files are preferred; if they are absent, `mnist.npz` in the same
    directory is used.

    Args:
        data_dir: Directory holding the MNIST files
        kind: 'train' or 'test'
        limit: Only return the first `limit` samples

    Returns:
        tuple: (images, labels) with images shaped (count, 28, 28)

    Raises:
        ValueError: If `kind` is not 'train' or 'test'
        DatasetError: If no usable files exist or images and labels disagree
    """
    if kind not in MNIST_FILES:
        raise ValueError(f"kind must be 'train' or 'test', got {kind!r}")

    image_name, label_name = MNIST_FILES[kind]
    image_path = _find(data_dir, image_name)
    label_path = _find(data_dir, label_name)

    if image_path and label_path:
        images = read_idx_images(image_path)
        labels = read_idx_labels(label_path)
    else:
        npz_path = os.path.join(data_dir, NPZ_FILENAME)
        if not os.path.exists(npz_path):
            raise DatasetError(
                f"No MNIST {kind} files in {data_dir} "
                f"(looked for {image_name}, {label_name} and {NPZ_FILENAME})"
            )
        try:
            with np.load(npz_path) as data:
                images = data[f'{kind}_images']
                labels = data[f'{kind}_labels']
        except KeyError as e:
            raise DatasetError(f"{npz_path} has no {kind} set: missing {e}") from e
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            raise DatasetError(f"Could not read {npz_path}: {e}") from e

    if len(images) != len(labels):
        raise DatasetError(
            f"MNIST {kind} set has {len(images)} images but "
            f"{len(labels)} labels"
        )

    if limit is not None:
        images = images[:limit]
        labels = labels[:limit]

    logger.info(f"Loaded {len(images)} MNIST {kind} samples from {data_dir}")
    return images, labels


def image_to_vector(image: np.ndarray) -> np.ndarray:
    """
    Convert an image to a network input vector.

    Pixels are flattened row by row and binarised: any non-zero pixel
    becomes 1.0, a zero pixel 0.0.
    """
    return (np.asarray(image).reshape(-1) != 0).astype(np.float64)
