# ==================================================
# ================  MODULE: padding  ===============
# ==================================================
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Sequence, Tuple, Union

import numpy as np

from ndvision.core.image_buffer import ImageBuffer
from ndvision.core.pixel_types import is_integral, saturating_cast

# Public API
__all__ = [
    "PaddingStrategy",
    "NoPadding",
    "ZeroPadding",
    "ConstantPadding",
    "EdgeReplicate",
    "kernel_margins",
    "resolve_padding",
]

Margins = Tuple[Tuple[int, int], Tuple[int, int]]


def kernel_margins(kernel_shape: Sequence[int], center: Sequence[int]) -> Margins:
    """
    Rows/cols a kernel reaches outside the image on each side.

    Returns
    -------
    ((top, bottom), (left, right))
    """
    kr, kc = kernel_shape[0], kernel_shape[1]
    cr, cc = center[0], center[1]
    return (cr, kr - 1 - cr), (cc, kc - 1 - cc)


# ==================================================
# ============  CLASS: PaddingStrategy  ============
# ==================================================
class PaddingStrategy(ABC):
    """
    Boundary-extension policy of the convolution engine.

    A strategy answers "what value lives at (row, col, channel)" for any
    integer coordinate, including coordinates outside the buffer. In-range
    coordinates always return the stored value.

    Notes
    -----
    - `sample` is the per-element path (classic convolution).
    - `pad` is the bulk path: it extends a whole (rows, cols, channels) array
      by the given margins (direct/ndimage/torch convolution).
    """

    name: ClassVar[str] = "abstract"
    # Matching boundary mode of scipy.ndimage and torch.nn.functional.pad.
    ndimage_mode: ClassVar[Optional[str]] = None
    torch_mode: ClassVar[Optional[str]] = None

    @property
    def will_pad(self) -> bool:
        """False when the output shrinks instead of reading outside the buffer."""
        return True

    @property
    def fill_value(self) -> float:
        return 0.0

    def sample(self, buffer: ImageBuffer, row: int, col: int, channel: int) -> Any:
        if 0 <= row < buffer.rows and 0 <= col < buffer.cols:
            return buffer.data[row, col, channel]
        return self._outside(buffer, row, col, channel)

    @abstractmethod
    def _outside(self, buffer: ImageBuffer, row: int, col: int, channel: int) -> Any:
        ...

    @abstractmethod
    def pad(self, data: np.ndarray, margins: Margins) -> np.ndarray:
        ...

    def output_shape(self, rows: int, cols: int, kernel_shape: Sequence[int]) -> Tuple[int, int]:
        """Spatial shape of a convolution result under this strategy."""
        return rows, cols


# ====[ No padding ]====
@dataclass(frozen=True)
class NoPadding(PaddingStrategy):
    """Never reads outside the image; convolution output shrinks by (kr-1, kc-1)."""

    name: ClassVar[str] = "none"

    @property
    def will_pad(self) -> bool:
        return False

    def _outside(self, buffer: ImageBuffer, row: int, col: int, channel: int) -> Any:
        # No value lives there; no-padding convolution never asks.
        return None

    def pad(self, data: np.ndarray, margins: Margins) -> np.ndarray:
        return np.array(data, copy=True)

    def output_shape(self, rows: int, cols: int, kernel_shape: Sequence[int]) -> Tuple[int, int]:
        return rows - kernel_shape[0] + 1, cols - kernel_shape[1] + 1


# ====[ Constant fills ]====
@dataclass(frozen=True)
class ConstantPadding(PaddingStrategy):
    """Every outside sample equals `value`."""

    value: float = 0.0
    name: ClassVar[str] = "constant"
    ndimage_mode: ClassVar[Optional[str]] = "constant"
    torch_mode: ClassVar[Optional[str]] = "constant"

    @property
    def fill_value(self) -> float:
        return float(self.value)

    def _outside(self, buffer: ImageBuffer, row: int, col: int, channel: int) -> Any:
        return self.value

    def pad(self, data: np.ndarray, margins: Margins) -> np.ndarray:
        fill: Any = self.value
        if is_integral(data.dtype) or data.dtype == np.bool_:
            fill = saturating_cast(np.asarray(self.value), data.dtype).item()
        return np.pad(data, (margins[0], margins[1], (0, 0)), mode="constant", constant_values=fill)


@dataclass(frozen=True)
class ZeroPadding(ConstantPadding):
    """Every outside sample is zero."""

    name: ClassVar[str] = "zero"

    def __init__(self) -> None:
        super().__init__(0.0)


# ====[ Edge replicate ]====
@dataclass(frozen=True)
class EdgeReplicate(PaddingStrategy):
    """Clamp row and column independently onto the nearest valid index."""

    name: ClassVar[str] = "edge"
    ndimage_mode: ClassVar[Optional[str]] = "nearest"
    torch_mode: ClassVar[Optional[str]] = "replicate"

    def _outside(self, buffer: ImageBuffer, row: int, col: int, channel: int) -> Any:
        r = min(max(row, 0), buffer.rows - 1)
        c = min(max(col, 0), buffer.cols - 1)
        return buffer.data[r, c, channel]

    def pad(self, data: np.ndarray, margins: Margins) -> np.ndarray:
        return np.pad(data, (margins[0], margins[1], (0, 0)), mode="edge")


# ==================================================
# ==============  Factory / resolution  ============
# ==================================================
_ALIASES = {
    "none": "none",
    "valid": "none",
    "zero": "zero",
    "zeros": "zero",
    "constant": "constant",
    "edge": "edge",
    "replicate": "edge",
    "nearest": "edge",
}


def resolve_padding(
    padding: Union[str, PaddingStrategy, None] = None,
    constant_value: float = 0.0,
) -> PaddingStrategy:
    """
    Map a padding name (or instance) onto a strategy instance.

    Parameters
    ----------
    padding : str or PaddingStrategy or None
        Strategy instance (returned as-is), a name ("none", "zero",
        "constant", "edge" and aliases) or None for the default EdgeReplicate.
    constant_value : float, default 0.0
        Fill value for "constant".
    """
    if padding is None:
        return EdgeReplicate()
    if isinstance(padding, PaddingStrategy):
        return padding
    if not isinstance(padding, str) or padding.lower() not in _ALIASES:
        raise ValueError(f"[resolve_padding] Unknown padding strategy: {padding!r}")

    key = _ALIASES[padding.lower()]
    if key == "none":
        return NoPadding()
    if key == "zero":
        return ZeroPadding()
    if key == "constant":
        return ConstantPadding(constant_value)
    return EdgeReplicate()
