# ==================================================
# =================  MODULE: sobel  ================
# ==================================================
from __future__ import annotations

from typing import Optional, Tuple, Union

import numpy as np

from ndvision.core.config import ConvolutionConfig, GlobalConfig
from ndvision.core.image_buffer import ColourModel, ImageBuffer
from ndvision.core.padding import PaddingStrategy, resolve_padding
from ndvision.core.pixel_types import ACCUMULATOR_DTYPE, saturating_cast
from ndvision.operators.convolution import Convolver
from ndvision.operators.kernels import KernelBuilder

# Public API
__all__ = ["sobel_gradients", "full_sobel", "apply_sobel"]

PaddingLike = Union[str, PaddingStrategy, None]


def _as_buffer(image: Union[ImageBuffer, np.ndarray]) -> ImageBuffer:
    return image if isinstance(image, ImageBuffer) else ImageBuffer.from_array(image, copy=False)


def sobel_gradients(
    image: ImageBuffer,
    padding: PaddingLike = None,
    conv_cfg: Optional[ConvolutionConfig] = None,
    global_cfg: Optional[GlobalConfig] = None,
) -> Tuple[ImageBuffer, ImageBuffer]:
    """
    Horizontal and vertical Sobel derivatives as float64 buffers.

    Parameters
    ----------
    image : ImageBuffer
        Input image (any channel count, each channel handled separately).
    padding : str or PaddingStrategy, optional
        Boundary policy; edge replicate by default.

    Returns
    -------
    (gx, gy) : tuple of ImageBuffer
        `gx` grows with intensity to the right, `gy` with intensity downward.
    """
    builder = KernelBuilder()
    convolver = Convolver(conv_cfg=conv_cfg, global_cfg=global_cfg)
    strategy = resolve_padding(padding)
    gx = convolver(image, builder.build_sobel_horizontal(), padding=strategy, output_dtype=ACCUMULATOR_DTYPE)
    gy = convolver(image, builder.build_sobel_vertical(), padding=strategy, output_dtype=ACCUMULATOR_DTYPE)
    return gx, gy


def full_sobel(
    image: ImageBuffer,
    padding: PaddingLike = None,
    conv_cfg: Optional[ConvolutionConfig] = None,
    global_cfg: Optional[GlobalConfig] = None,
) -> Tuple[ImageBuffer, ImageBuffer]:
    """Gradient magnitude `hypot(gx, gy)` and direction `atan2(gy, gx)` in radians."""
    image = _as_buffer(image)
    gx, gy = sobel_gradients(image, padding, conv_cfg, global_cfg)
    magnitude = np.hypot(gx.data, gy.data)
    direction = np.arctan2(gy.data, gx.data)
    model = image.model if image.channels == 1 else ColourModel.OTHER
    return ImageBuffer(magnitude, model), ImageBuffer(direction, model)


def apply_sobel(
    image: ImageBuffer,
    padding: PaddingLike = None,
    conv_cfg: Optional[ConvolutionConfig] = None,
    global_cfg: Optional[GlobalConfig] = None,
) -> ImageBuffer:
    """Sobel magnitude saturated into the input dtype."""
    image = _as_buffer(image)
    magnitude, _ = full_sobel(image, padding, conv_cfg, global_cfg)
    return ImageBuffer(saturating_cast(magnitude.data, image.dtype), image.model)
