# ==================================================
# ==============  TESTS: shared fixtures  ==========
# ==================================================
import numpy as np
import pytest

from ndvision.core.image_buffer import ColourModel, ImageBuffer


@pytest.fixture
def gray_ramp():
    """4x5 uint8 image with values 0..19 in row-major order"""
    return ImageBuffer.from_array(np.arange(20, dtype=np.uint8).reshape(4, 5))


@pytest.fixture
def rgb_image():
    """3x4 RGB uint8 image with distinct values per channel"""
    data = np.arange(36, dtype=np.uint8).reshape(3, 4, 3)
    return ImageBuffer.from_array(data, ColourModel.RGB)


@pytest.fixture
def step_edge():
    """16x16 grayscale image: left half 0, right half 255"""
    data = np.zeros((16, 16), dtype=np.uint8)
    data[:, 8:] = 255
    return ImageBuffer.from_array(data)


@pytest.fixture
def cross_image():
    """11x11 uint8 image with a 255-valued plus sign through the center"""
    data = np.zeros((11, 11), dtype=np.uint8)
    data[5, :] = 255
    data[:, 5] = 255
    return ImageBuffer.from_array(data)
