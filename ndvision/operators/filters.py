# ==================================================
# ================  MODULE: filters  ===============
# ==================================================
from __future__ import annotations

from typing import Sequence, Tuple, Union

import numpy as np
from scipy.ndimage import median_filter as nd_median_filter

from ndvision.core.errors import DimensionMismatchError, InvalidDimensionError
from ndvision.core.image_buffer import ImageBuffer
from ndvision.core.padding import PaddingStrategy, resolve_padding
from ndvision.core.pixel_types import saturating_cast
from ndvision.operators.kernels import default_center
from ndvision.utils.decorators import log_exceptions

# Public API
__all__ = ["median_filter"]


@log_exceptions(raise_exception=True)
def median_filter(
    image: Union[ImageBuffer, np.ndarray],
    size: Union[int, Sequence[int]] = (3, 3),
    padding: Union[str, PaddingStrategy, None] = None,
) -> ImageBuffer:
    """
    Per-channel median over a (rows, cols) window.

    Parameters
    ----------
    image : ImageBuffer or np.ndarray
        Input image.
    size : int or (int, int), default (3, 3)
        Window shape, centred on `(n - 1) // 2` like a kernel.
    padding : str or PaddingStrategy, optional
        Boundary policy; edge replicate by default. No-Padding shrinks the
        result by (rows - 1, cols - 1) exactly as convolution does.

    Returns
    -------
    ImageBuffer
        Filtered image in the input dtype.

    Notes
    -----
    For even window sizes the upper of the two middle samples is returned.
    """
    buffer = image if isinstance(image, ImageBuffer) else ImageBuffer.from_array(image, copy=False)
    window: Tuple[int, ...] = (size, size) if isinstance(size, (int, np.integer)) else tuple(size)
    if len(window) != 2 or any(n <= 0 for n in window):
        raise InvalidDimensionError(f"[median_filter] Window must be two positive sizes, got {size}.")

    strategy = resolve_padding(padding)
    if not strategy.will_pad and (window[0] > buffer.rows or window[1] > buffer.cols):
        raise DimensionMismatchError(
            f"[median_filter] Window {window} larger than image {buffer.shape[:2]} without padding."
        )

    center = default_center(window)
    origin = [c - n // 2 for c, n in zip(center, window)]
    out_rows, out_cols = strategy.output_shape(buffer.rows, buffer.cols, window)

    planes = []
    for ch in range(buffer.channels):
        plane = buffer.data[:, :, ch].astype(np.float64)
        if strategy.will_pad:
            filtered = nd_median_filter(
                plane, size=window, mode=strategy.ndimage_mode, cval=strategy.fill_value, origin=origin
            )
        else:
            full = nd_median_filter(plane, size=window, mode="nearest", origin=origin)
            filtered = full[center[0]:center[0] + out_rows, center[1]:center[1] + out_cols]
        planes.append(filtered)

    return ImageBuffer(saturating_cast(np.stack(planes, axis=-1), buffer.dtype), buffer.model)
