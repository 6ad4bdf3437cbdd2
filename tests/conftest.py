"""
Pytest configuration and shared fixtures for the equalization tests.

Kernels run on the numba CUDA simulator unless NUMBA_ENABLE_CUDASIM is
already set (export NUMBA_ENABLE_CUDASIM=0 to test on a real GPU).
"""

import os

os.environ.setdefault("NUMBA_ENABLE_CUDASIM", "1")

import numpy as np
import pytest


def launcher(group_size):
    """Launch callback with the same contract the pipeline passes to the scan helpers."""
    def launch(name, kernel, workers, *args, group_size=group_size):
        groups = (workers + group_size - 1) // group_size
        kernel[groups, group_size](*args)
    return launch


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def two_value_image():
    """8x8 image, top half 10 and bottom half 200."""
    image = np.full((8, 8), 10, dtype=np.uint8)
    image[4:, :] = 200
    return image


@pytest.fixture
def gray_image(rng):
    return rng.integers(0, 256, size=(20, 24), dtype=np.uint8)


@pytest.fixture
def colour_image(rng):
    image = rng.integers(0, 256, size=(12, 10, 3), dtype=np.uint8)
    # Pure white exceeds 255 under the luma weights
    image[0, 0] = (255, 255, 255)
    return image
