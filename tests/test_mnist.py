"""
test_mnist.py
~~~~~~~~~~~~~

Unit tests for reading MNIST IDX and npz files.
"""

import numpy as np
import pytest

from conftest import write_idx
from mnist3lnn.exceptions import DatasetError
from mnist3lnn.mnist import (
    IMAGE_MAGIC,
    LABEL_MAGIC,
    NPZ_FILENAME,
    image_to_vector,
    load_dataset,
    read_idx_images,
    read_idx_labels,
)


@pytest.mark.unit
class TestIdxFiles:
    """Test parsing single IDX files."""

    def test_read_images(self, tmp_path):
        """Test that image files are shaped by their header."""
        images = np.arange(2 * 3 * 4, dtype=np.uint8).reshape(2, 3, 4)
        path = tmp_path / 'images-idx3-ubyte'
        write_idx(path, IMAGE_MAGIC, images)

        result = read_idx_images(str(path))

        assert result.shape == (2, 3, 4)
        assert result.dtype == np.uint8
        np.testing.assert_array_equal(result, images)

    def test_read_labels(self, tmp_path):
        """Test that label files are read as a flat array."""
        path = tmp_path / 'labels-idx1-ubyte'
        write_idx(path, LABEL_MAGIC, [7, 2, 1, 0])

        np.testing.assert_array_equal(read_idx_labels(str(path)), [7, 2, 1, 0])

    def test_read_gzip(self, tmp_path):
        """Test that gzip-compressed files are decompressed."""
        path = tmp_path / 'labels-idx1-ubyte.gz'
        write_idx(path, LABEL_MAGIC, [3, 4])

        np.testing.assert_array_equal(read_idx_labels(str(path)), [3, 4])

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises DatasetError."""
        with pytest.raises(DatasetError, match='not found'):
            read_idx_labels(str(tmp_path / 'nope'))

    def test_wrong_magic(self, tmp_path):
        """Test that a label file is not accepted as an image file."""
        path = tmp_path / 'labels-idx1-ubyte'
        write_idx(path, LABEL_MAGIC, list(range(20)))

        with pytest.raises(DatasetError, match='magic'):
            read_idx_images(str(path))

    def test_truncated_data(self, tmp_path):
        """Test that a file shorter than its header announces is rejected."""
        path = tmp_path / 'labels-idx1-ubyte'
        header = np.array([LABEL_MAGIC, 10], dtype='>u4').tobytes()
        path.write_bytes(header + bytes([1, 2, 3]))

        with pytest.raises(DatasetError, match='truncated'):
            read_idx_labels(str(path))

    def test_short_header(self, tmp_path):
        """Test that a file without a full header is rejected."""
        path = tmp_path / 'images-idx3-ubyte'
        path.write_bytes(b'\x00\x00\x08')

        with pytest.raises(DatasetError):
            read_idx_images(str(path))


@pytest.mark.unit
class TestLoadDataset:
    """Test loading complete training and testing sets."""

    def test_load_train_and_test(self, mnist_dir):
        """Test loading both sets from IDX files."""
        train_images, train_labels = load_dataset(str(mnist_dir), 'train')
        test_images, test_labels = load_dataset(str(mnist_dir), 'test')

        assert train_images.shape == (30, 28, 28)
        assert test_images.shape == (12, 28, 28)
        np.testing.assert_array_equal(train_labels, np.arange(30) % 10)
        assert len(test_labels) == 12

    def test_limit(self, mnist_dir):
        """Test that only the first samples are returned with a limit."""
        images, labels = load_dataset(str(mnist_dir), 'train', limit=5)

        assert len(images) == 5
        np.testing.assert_array_equal(labels, [0, 1, 2, 3, 4])

    def test_gzip_files_are_found(self, tmp_path):
        """Test that .gz variants of the file names are used."""
        write_idx(tmp_path / 't10k-images-idx3-ubyte.gz', IMAGE_MAGIC,
                  np.zeros((2, 28, 28)))
        write_idx(tmp_path / 't10k-labels-idx1-ubyte.gz', LABEL_MAGIC, [5, 6])

        images, labels = load_dataset(str(tmp_path), 'test')

        assert images.shape == (2, 28, 28)
        np.testing.assert_array_equal(labels, [5, 6])

    def test_npz_fallback(self, tmp_path):
        """Test that mnist.npz is used when no IDX files exist."""
        np.savez_compressed(
            tmp_path / NPZ_FILENAME,
            train_images=np.ones((3, 28, 28), dtype=np.uint8),
            train_labels=np.array([1, 2, 3], dtype=np.uint8),
            test_images=np.zeros((1, 28, 28), dtype=np.uint8),
            test_labels=np.array([9], dtype=np.uint8)
        )

        images, labels = load_dataset(str(tmp_path), 'train')
        assert images.shape == (3, 28, 28)
        np.testing.assert_array_equal(labels, [1, 2, 3])

        _, labels = load_dataset(str(tmp_path), 'test')
        np.testing.assert_array_equal(labels, [9])

    def test_npz_missing_set(self, tmp_path):
        """Test that an npz without the requested set raises DatasetError."""
        np.savez_compressed(
            tmp_path / NPZ_FILENAME,
            test_images=np.zeros((1, 28, 28), dtype=np.uint8),
            test_labels=np.array([9], dtype=np.uint8)
        )

        with pytest.raises(DatasetError, match='no train set'):
            load_dataset(str(tmp_path), 'train')

    @pytest.mark.parametrize('content', [
        b'this is not an npz file',
        b'PK\x03\x04 truncated zip',
    ])
    def test_npz_corrupt(self, tmp_path, content):
        """Test that an unreadable npz raises DatasetError."""
        (tmp_path / NPZ_FILENAME).write_bytes(content)

        with pytest.raises(DatasetError, match='Could not read'):
            load_dataset(str(tmp_path), 'test')

    def test_count_mismatch(self, tmp_path):
        """Test that images and labels of different lengths are rejected."""
        write_idx(tmp_path / 'train-images-idx3-ubyte', IMAGE_MAGIC,
                  np.zeros((3, 28, 28)))
        write_idx(tmp_path / 'train-labels-idx1-ubyte', LABEL_MAGIC, [1, 2])

        with pytest.raises(DatasetError, match='3 images but 2 labels'):
            load_dataset(str(tmp_path), 'train')

    def test_no_files(self, tmp_path):
        """Test that an empty directory raises DatasetError."""
        with pytest.raises(DatasetError):
            load_dataset(str(tmp_path), 'train')

    def test_bad_kind(self, mnist_dir):
        """Test that only 'train' and 'test' are accepted."""
        with pytest.raises(ValueError):
            load_dataset(str(mnist_dir), 'validation')


@pytest.mark.unit
class TestImageToVector:
    """Test conversion of images to input vectors."""

    def test_binarises_pixels(self):
        """Test that any non-zero pixel becomes 1.0."""
        image = np.array([[0, 1], [128, 255]], dtype=np.uint8)

        vector = image_to_vector(image)

        assert vector.dtype == np.float64
        np.testing.assert_array_equal(vector, [0.0, 1.0, 1.0, 1.0])

    def test_row_major_order(self):
        """Test that rows are concatenated in order."""
        image = np.zeros((28, 28), dtype=np.uint8)
        image[1, 0] = 200

        vector = image_to_vector(image)

        assert vector.shape == (784,)
        assert vector[28] == 1.0
        assert vector.sum() == 1.0
