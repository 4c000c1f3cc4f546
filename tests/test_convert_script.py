"""
test_convert_script.py
~~~~~~~~~~~~~~~~~~~~~~

Tests for scripts/convert_idx_to_npz.py.
"""

import importlib.util
import os

import numpy as np
import pytest

from mnist3lnn.exceptions import DatasetError
from mnist3lnn.mnist import NPZ_FILENAME, load_dataset

SCRIPT_PATH = os.path.join(
    os.path.dirname(__file__), '..', 'scripts', 'convert_idx_to_npz.py'
)


@pytest.fixture(scope='module')
def convert():
    spec = importlib.util.spec_from_file_location('convert_idx_to_npz', SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.integration
class TestConvertIdxToNpz:
    """Test converting IDX files to mnist.npz."""

    def test_conversion(self, convert, mnist_dir, tmp_path_factory):
        """Test that the NPZ file holds the same data and can be loaded."""
        arrays = convert.load_idx_sets(str(mnist_dir))
        out_dir = tmp_path_factory.mktemp('npz')
        npz_path = str(out_dir / NPZ_FILENAME)

        convert.save_as_npz(arrays, npz_path)

        assert convert.verify_conversion(npz_path, arrays) is True
        assert sorted(arrays) == [
            'test_images', 'test_labels', 'train_images', 'train_labels'
        ]

        images, labels = load_dataset(str(out_dir), 'test')
        np.testing.assert_array_equal(images, arrays['test_images'])
        np.testing.assert_array_equal(labels, arrays['test_labels'])

    def test_missing_files(self, convert, tmp_path):
        """Test that a directory without IDX files is refused."""
        with pytest.raises(DatasetError):
            convert.load_idx_sets(str(tmp_path))
