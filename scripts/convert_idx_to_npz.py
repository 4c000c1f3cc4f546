#!/usr/bin/env python3
"""
Convert the four MNIST IDX files to a single compressed NPZ file.

The IDX files (train-images-idx3-ubyte, train-labels-idx1-ubyte,
t10k-images-idx3-ubyte, t10k-labels-idx1-ubyte, optionally gzipped) are
read and saved as data/mnist.npz, which mnist3lnn loads when the IDX files
are not present.

Usage:
    python scripts/convert_idx_to_npz.py [data_dir]

The script will:
1. Load the IDX training and testing sets
2. Save them as mnist.npz in the same directory
3. Verify the conversion was successful
"""

import os
import sys
from typing import Dict

import numpy as np

from mnist3lnn.exceptions import DatasetError
from mnist3lnn.mnist import MNIST_FILES, NPZ_FILENAME, load_dataset


def load_idx_sets(data_dir: str) -> Dict[str, np.ndarray]:
    """
    Load the training and testing sets from IDX files.

    Parameters:
    -----------
    data_dir : str
        Directory holding the IDX files

    Returns:
    --------
    dict
        Arrays keyed by their name in the NPZ file
    """
    print(f"📂 Loading MNIST IDX files from: {data_dir}")

    arrays = {}
    for kind, (image_name, label_name) in MNIST_FILES.items():
        for name in (image_name, label_name):
            if not any(
                os.path.exists(os.path.join(data_dir, n))
                for n in (name, name + '.gz')
            ):
                raise DatasetError(f"Missing IDX file: {name}")

        images, labels = load_dataset(data_dir, kind)
        arrays[f'{kind}_images'] = images
        arrays[f'{kind}_labels'] = labels
        print(f"   - {kind.capitalize()}: {len(images)} images")

    return arrays


def save_as_npz(arrays: Dict[str, np.ndarray], filepath: str) -> None:
    """
    Save MNIST data in NPZ format.

    Parameters:
    -----------
    arrays : dict
        Arrays keyed by their name in the NPZ file
    filepath : str
        Output path for the .npz file
    """
    print(f"\n💾 Converting to NPZ format: {filepath}")

    np.savez_compressed(filepath, **arrays)

    npz_size = os.path.getsize(filepath) / (1024 * 1024)  # MB
    print(f"✅ Saved successfully (size: {npz_size:.2f} MB)")


def verify_conversion(npz_filepath: str, arrays: Dict[str, np.ndarray]) -> bool:
    """
    Verify that the NPZ file contains the same data as the IDX files.

    Returns:
    --------
    bool
        True if verification passes
    """
    print(f"\n🔍 Verifying conversion...")

    with np.load(npz_filepath) as data:
        for name, original in arrays.items():
            assert np.array_equal(data[name], original), \
                f"{name} doesn't match!"

    print("✅ Verification passed! Data is identical.")
    return True


def main():
    """Main conversion function."""
    print("=" * 60)
    print("MNIST Data Format Converter")
    print("IDX files → compressed NPZ")
    print("=" * 60)

    script_dir = os.path.dirname(os.path.abspath(__file__))
    project_root = os.path.dirname(script_dir)
    data_dir = sys.argv[1] if len(sys.argv) > 1 else os.path.join(project_root, 'data')
    npz_path = os.path.join(data_dir, NPZ_FILENAME)

    if os.path.exists(npz_path):
        response = input(f"\n⚠️  {npz_path} already exists. Overwrite? (y/N): ")
        if response.lower() != 'y':
            print("❌ Conversion cancelled.")
            sys.exit(0)

    try:
        arrays = load_idx_sets(data_dir)
        save_as_npz(arrays, npz_path)
        verify_conversion(npz_path, arrays)

        print("\n" + "=" * 60)
        print("✅ CONVERSION COMPLETE!")
        print("=" * 60)
        print(f"\n📁 New NPZ file: {npz_path}")
        print(f"\n💡 The IDX files are still preferred when present; "
              f"remove them to use the NPZ file.")

    except DatasetError as e:
        print(f"\n❌ Error: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"\n❌ Error during conversion: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
