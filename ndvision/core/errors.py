# ==================================================
# ================  MODULE: errors  ================
# ==================================================
from __future__ import annotations

# Public API
__all__ = [
    "NDVisionError",
    "OutOfBoundsError",
    "DimensionMismatchError",
    "InvalidDimensionError",
    "InvalidCenterError",
    "EmptyKernelError",
    "InvalidThresholdError",
    "UnsupportedChannelCountError",
    "InvalidParameterError",
    "ReadOnlyBufferError",
]


class NDVisionError(Exception):
    """Root of every error raised by the buffer, kernel, convolution and Canny operators."""


# ====[ Buffer access ]====
class OutOfBoundsError(NDVisionError, IndexError):
    """Row, column or channel index outside the buffer shape."""


class ReadOnlyBufferError(NDVisionError, ValueError):
    """Write attempted through a read-only borrowed view."""


# ====[ Shapes ]====
class DimensionMismatchError(NDVisionError, ValueError):
    """Kernel/image rank or shape incompatibility."""


class UnsupportedChannelCountError(NDVisionError, ValueError):
    """Channel arity not accepted by the operation (e.g. colour input to Canny)."""


# ====[ Kernel construction ]====
class InvalidDimensionError(NDVisionError, ValueError):
    """Requested kernel size is non-positive or not supported for this kernel."""


class InvalidCenterError(NDVisionError, ValueError):
    """Kernel center offset lies outside the coefficient array."""


class EmptyKernelError(NDVisionError, ValueError):
    """Kernel with a zero-length axis."""


class InvalidParameterError(NDVisionError, ValueError):
    """Numeric parameter out of its domain (sigma <= 0, unusable dtype, ...)."""


# ====[ Canny ]====
class InvalidThresholdError(NDVisionError, ValueError):
    """Hysteresis thresholds negative or in the wrong order."""
