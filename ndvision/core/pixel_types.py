# ==================================================
# ==============  MODULE: pixel_types  =============
# ==================================================
from __future__ import annotations

from typing import Tuple, Union

import numpy as np

from ndvision.core.errors import InvalidParameterError

# Public API
__all__ = [
    "ACCUMULATOR_DTYPE",
    "DTypeLike",
    "is_integral",
    "is_binary",
    "pixel_bounds",
    "normalise_pixel_value",
    "saturating_cast",
    "check_kernel_dtype",
]

DTypeLike = Union[np.dtype, type, str]

# Wide enough for every supported integer pixel type and for negative taps.
ACCUMULATOR_DTYPE = np.dtype(np.float64)


def is_integral(dtype: DTypeLike) -> bool:
    """True for bounded integer pixel types (bool excluded)."""
    return np.issubdtype(np.dtype(dtype), np.integer)


def is_binary(dtype: DTypeLike) -> bool:
    return np.dtype(dtype) == np.bool_


def pixel_bounds(dtype: DTypeLike) -> Tuple[float, float]:
    """
    Return the (min, max) pixel value represented by `dtype`.

    Integer pixels span their full representable range, floating pixels are
    taken to live in [0, 1] and binary pixels in [False, True].

    Parameters
    ----------
    dtype : numpy dtype-like
        Element type of an image buffer.

    Returns
    -------
    tuple of float
        Lower and upper pixel bound.
    """
    dt = np.dtype(dtype)
    if is_binary(dt):
        return 0.0, 1.0
    if is_integral(dt):
        info = np.iinfo(dt)
        return float(info.min), float(info.max)
    if np.issubdtype(dt, np.floating):
        return 0.0, 1.0
    raise InvalidParameterError(f"[pixel_types] Unsupported pixel dtype '{dt}'.")


def normalise_pixel_value(values: np.ndarray, dtype: DTypeLike) -> np.ndarray:
    """Map pixel values of `dtype` onto [0, 1] using the dtype pixel bounds."""
    low, high = pixel_bounds(dtype)
    values = np.asarray(values, dtype=ACCUMULATOR_DTYPE)
    return (values - low) / (high - low)


def saturating_cast(values: np.ndarray, dtype: DTypeLike) -> np.ndarray:
    """
    Cast accumulated values to `dtype`, clamping instead of wrapping.

    Parameters
    ----------
    values : np.ndarray
        Values in any numeric dtype (usually the float64 accumulator).
    dtype : numpy dtype-like
        Target pixel dtype.

    Returns
    -------
    np.ndarray
        New array of `dtype`. Integer targets are rounded half-to-even then
        clipped to the type limits; bool targets keep strictly positive values;
        floating targets are cast without clipping.
    """
    dt = np.dtype(dtype)
    values = np.asarray(values)

    if is_binary(dt):
        return values > 0
    if is_integral(dt):
        info = np.iinfo(dt)
        wide = np.rint(values.astype(ACCUMULATOR_DTYPE, copy=False))
        wide = np.nan_to_num(wide, nan=0.0, posinf=float(info.max), neginf=float(info.min))
        return np.clip(wide, info.min, info.max).astype(dt)
    if np.issubdtype(dt, np.floating):
        return values.astype(dt, copy=True)
    raise InvalidParameterError(f"[pixel_types] Cannot cast to dtype '{dt}'.")


def check_kernel_dtype(dtype: DTypeLike, integral_taps: bool = True) -> np.dtype:
    """
    Validate a kernel coefficient dtype.

    Kernel taps may be negative (Sobel, Laplace) so only signed integers and
    floats are accepted; integer dtypes are refused when the taps are not integral.
    """
    dt = np.dtype(dtype)
    if np.issubdtype(dt, np.floating):
        return dt
    if np.issubdtype(dt, np.signedinteger):
        if not integral_taps:
            raise InvalidParameterError(
                f"[pixel_types] Kernel dtype '{dt}' cannot hold fractional taps."
            )
        return dt
    raise InvalidParameterError(
        f"[pixel_types] Kernel dtype '{dt}' must be signed integer or floating point."
    )
