# ==================================================
# =============  MODULE: image_buffer  =============
# ==================================================
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional, Sequence, Tuple

import numpy as np

from ndvision.core.errors import (
    DimensionMismatchError,
    OutOfBoundsError,
    ReadOnlyBufferError,
    UnsupportedChannelCountError,
)
from ndvision.core.pixel_types import (
    DTypeLike,
    is_binary,
    normalise_pixel_value,
    pixel_bounds,
    saturating_cast,
)

# Public API
__all__ = ["ColourModel", "ImageBuffer"]

Margins = Tuple[Tuple[int, int], Tuple[int, int]]

# HWC: rows, columns, channels (row-major, channel-minor)
ROW_AXIS, COL_AXIS, CHANNEL_AXIS = 0, 1, 2


# ==================================================
# ================== ColourModel ===================
# ==================================================
class ColourModel(Enum):
    """
    Colour model of a buffer, fixing the length of its channel axis.

    `OTHER` accepts any channel count and is used for intermediate buffers
    (e.g. stacked gradients) that carry no colour semantics.
    """

    GRAY = ("gray", 1)
    RGB = ("rgb", 3)
    RGBA = ("rgba", 4)
    HSV = ("hsv", 3)
    HSI = ("hsi", 3)
    HSL = ("hsl", 3)
    YCRCB = ("ycrcb", 3)
    CIEXYZ = ("ciexyz", 3)
    CIELAB = ("cielab", 3)
    CIELUV = ("cieluv", 3)
    OTHER = ("other", None)

    @property
    def channels(self) -> Optional[int]:
        return self.value[1]

    @classmethod
    def infer(cls, channels: int) -> "ColourModel":
        """Default model for a channel count (1 → GRAY, 3 → RGB, 4 → RGBA)."""
        return {1: cls.GRAY, 3: cls.RGB, 4: cls.RGBA}.get(int(channels), cls.OTHER)


# ==================================================
# ================== ImageBuffer ===================
# ==================================================
class ImageBuffer:
    """
    Strided (rows, columns, channels) pixel container.

    The buffer either owns its ndarray or borrows a region of another buffer
    (or of caller storage). Borrowed views keep a reference to what they
    borrow from, so the storage cannot be released while the view is alive.

    Notes
    -----
    - Layout is HWC: row-major, channel-minor, channel axis always last.
    - Direct access (`get`, `set`, `view`) is bounds-checked; negative
      indices are rejected rather than wrapped.
    - Read-only views refuse `set` with `ReadOnlyBufferError`.
    """

    def __init__(
        self,
        data: np.ndarray,
        model: Optional[ColourModel] = None,
        *,
        owns_data: bool = True,
        base: Optional[Any] = None,
    ) -> None:
        data = np.asarray(data)
        if data.ndim != 3:
            raise DimensionMismatchError(
                f"[ImageBuffer] Expected (rows, cols, channels) data, got shape {data.shape}."
            )

        model = model if model is not None else ColourModel.infer(data.shape[CHANNEL_AXIS])
        if model.channels is not None and model.channels != data.shape[CHANNEL_AXIS]:
            raise UnsupportedChannelCountError(
                f"[ImageBuffer] Colour model {model.name} needs {model.channels} channel(s), "
                f"data has {data.shape[CHANNEL_AXIS]}."
            )

        self._data: np.ndarray = data
        self._model: ColourModel = model
        self._owns_data: bool = bool(owns_data)
        self._base: Optional[Any] = base

    # ====[ Constructors ]====
    @classmethod
    def zeros(
        cls,
        rows: int,
        cols: int,
        model: ColourModel = ColourModel.GRAY,
        dtype: DTypeLike = np.uint8,
        channels: Optional[int] = None,
    ) -> "ImageBuffer":
        """Allocate a zero-filled buffer."""
        return cls.full(rows, cols, 0, model=model, dtype=dtype, channels=channels)

    @classmethod
    def full(
        cls,
        rows: int,
        cols: int,
        fill: Any,
        model: ColourModel = ColourModel.GRAY,
        dtype: DTypeLike = np.uint8,
        channels: Optional[int] = None,
    ) -> "ImageBuffer":
        """
        Allocate a buffer filled with `fill` (saturated into `dtype`).

        Parameters
        ----------
        rows, cols : int
            Spatial dimensions, must be non-negative.
        fill : scalar
            Initial value of every element.
        model : ColourModel, default GRAY
            Colour model; fixes the channel count unless it is `OTHER`.
        dtype : numpy dtype-like, default uint8
            Element type.
        channels : int, optional
            Channel count, required only for `ColourModel.OTHER`.
        """
        if rows < 0 or cols < 0:
            raise DimensionMismatchError(f"[ImageBuffer] Negative dimensions ({rows}, {cols}).")
        n_channels = model.channels if model.channels is not None else channels
        if n_channels is None or n_channels < 1:
            raise UnsupportedChannelCountError(
                f"[ImageBuffer] A channel count is required for model {model.name}."
            )
        value = saturating_cast(np.asarray(fill), dtype)
        data = np.full((rows, cols, n_channels), value, dtype=np.dtype(dtype))
        return cls(data, model)

    @classmethod
    def from_array(
        cls,
        array: np.ndarray,
        model: Optional[ColourModel] = None,
        copy: bool = True,
    ) -> "ImageBuffer":
        """
        Wrap existing storage.

        A 2-D array is read as a single-channel image. With `copy=False` the
        buffer borrows the caller's array (writes go through to it).
        """
        array = np.asarray(array)
        if array.ndim == 2:
            array = array[:, :, np.newaxis]
        if array.ndim != 3:
            raise DimensionMismatchError(
                f"[ImageBuffer] Expected a 2-D or 3-D array, got {array.ndim}-D."
            )
        if copy:
            return cls(np.array(array, copy=True), model)
        return cls(array, model, owns_data=False, base=array)

    @classmethod
    def from_shape_data(
        cls,
        rows: int,
        cols: int,
        values: Sequence[Any],
        model: ColourModel = ColourModel.GRAY,
        dtype: Optional[DTypeLike] = None,
    ) -> "ImageBuffer":
        """Build a buffer from flat row-major, channel-minor values."""
        if model.channels is None:
            raise UnsupportedChannelCountError("[ImageBuffer] from_shape_data needs a concrete colour model.")
        flat = np.asarray(values, dtype=dtype)
        expected = rows * cols * model.channels
        if flat.size != expected:
            raise DimensionMismatchError(
                f"[ImageBuffer] {flat.size} values cannot fill a {rows}x{cols}x{model.channels} buffer."
            )
        return cls(flat.reshape(rows, cols, model.channels).copy(), model)

    # ====[ Properties ]====
    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def model(self) -> ColourModel:
        return self._model

    @property
    def shape(self) -> Tuple[int, int, int]:
        return tuple(self._data.shape)  # type: ignore[return-value]

    @property
    def rows(self) -> int:
        return self._data.shape[ROW_AXIS]

    @property
    def cols(self) -> int:
        return self._data.shape[COL_AXIS]

    @property
    def channels(self) -> int:
        return self._data.shape[CHANNEL_AXIS]

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    @property
    def owns_data(self) -> bool:
        return self._owns_data

    @property
    def base(self) -> Optional[Any]:
        return self._base

    @property
    def writable(self) -> bool:
        return bool(self._data.flags.writeable)

    # ====[ Element access ]====
    def _check_index(self, row: int, col: int, channel: int) -> None:
        for name, value, size in (
            ("row", row, self.rows),
            ("col", col, self.cols),
            ("channel", channel, self.channels),
        ):
            if not isinstance(value, (int, np.integer)) or isinstance(value, bool):
                raise OutOfBoundsError(f"[ImageBuffer] {name} index must be an integer, got {value!r}.")
            if value < 0 or value >= size:
                raise OutOfBoundsError(
                    f"[ImageBuffer] {name} index {value} outside [0, {size}) for shape {self.shape}."
                )

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols

    def get(self, row: int, col: int, channel: int = 0) -> Any:
        self._check_index(row, col, channel)
        return self._data[row, col, channel]

    def set(self, row: int, col: int, value: Any, channel: int = 0) -> None:
        """Write one element; the value is saturated into the buffer dtype."""
        if not self.writable:
            raise ReadOnlyBufferError("[ImageBuffer] Cannot write through a read-only view.")
        self._check_index(row, col, channel)
        self._data[row, col, channel] = saturating_cast(np.asarray(value), self.dtype)

    def pixel(self, row: int, col: int) -> np.ndarray:
        """Copy of all channel values at (row, col)."""
        self._check_index(row, col, 0)
        return self._data[row, col, :].copy()

    # ====[ Views & slices ]====
    @staticmethod
    def _resolve_span(span: Optional[slice], size: int, name: str) -> Tuple[int, int]:
        if span is None:
            return 0, size
        if span.step not in (None, 1):
            raise DimensionMismatchError(f"[ImageBuffer] {name} view must be contiguous (step 1).")
        start = 0 if span.start is None else span.start
        stop = size if span.stop is None else span.stop
        if start < 0 or stop > size or start > stop:
            raise OutOfBoundsError(
                f"[ImageBuffer] {name} span [{start}, {stop}) outside [0, {size}]."
            )
        return start, stop

    def view(
        self,
        rows: Optional[slice] = None,
        cols: Optional[slice] = None,
        writable: bool = False,
    ) -> "ImageBuffer":
        """
        Borrow a sub-rectangle without copying.

        Parameters
        ----------
        rows, cols : slice, optional
            Contiguous spans; `None` selects the full axis.
        writable : bool, default False
            Exclusive write borrow. Refused when this buffer is itself read-only.

        Returns
        -------
        ImageBuffer
            Borrowed buffer sharing storage with `self`.
        """
        r0, r1 = self._resolve_span(rows, self.rows, "row")
        c0, c1 = self._resolve_span(cols, self.cols, "col")
        if writable and not self.writable:
            raise ReadOnlyBufferError("[ImageBuffer] Cannot borrow a writable view of a read-only buffer.")

        region = self._data[r0:r1, c0:c1, :].view()
        if not writable:
            region.flags.writeable = False
        return ImageBuffer(region, self._model, owns_data=False, base=self)

    def channel(self, index: int, copy: bool = True) -> "ImageBuffer":
        """Extract one channel as a GRAY buffer (copied, or a read-only view)."""
        if not isinstance(index, (int, np.integer)) or not 0 <= index < self.channels:
            raise OutOfBoundsError(f"[ImageBuffer] channel {index} outside [0, {self.channels}).")
        plane = self._data[:, :, index:index + 1]
        if copy:
            return ImageBuffer(plane.copy(), ColourModel.GRAY)
        plane = plane.view()
        plane.flags.writeable = False
        return ImageBuffer(plane, ColourModel.GRAY, owns_data=False, base=self)

    # ====[ Element-wise transforms ]====
    def map(self, func: Callable[[Any], Any], dtype: Optional[DTypeLike] = None) -> "ImageBuffer":
        """
        Apply `func` to every element and return a new buffer.

        Elements are visited in row-major, channel-minor order. The first
        exception raised by `func` propagates and no buffer is produced.

        Parameters
        ----------
        func : callable
            Scalar transform.
        dtype : numpy dtype-like, optional
            Output element type (results are saturated into it). When omitted
            the dtype is inferred from the results.
        """
        results = [func(value) for value in self._data.reshape(-1)]

        if dtype is not None:
            out = saturating_cast(np.asarray(results), dtype) if results else np.empty(0, dtype=dtype)
        else:
            out = np.asarray(results) if results else np.empty(0, dtype=self.dtype)
        return ImageBuffer(out.reshape(self.shape), self._model)

    def astype(self, dtype: DTypeLike) -> "ImageBuffer":
        """Saturating cast to `dtype` without rescaling."""
        return ImageBuffer(saturating_cast(self._data, dtype), self._model)

    def into_type(self, dtype: DTypeLike) -> "ImageBuffer":
        """
        Convert to `dtype`, rescaling between the pixel bounds of both types
        (e.g. uint8 255 becomes uint16 65535 or float 1.0).
        """
        low, high = pixel_bounds(dtype)
        scaled = normalise_pixel_value(self._data, self.dtype) * (high - low) + low
        if is_binary(dtype):
            scaled = scaled >= 0.5
        return ImageBuffer(saturating_cast(scaled, dtype), self._model)

    def pad(self, margins: Margins, strategy: Any) -> "ImageBuffer":
        """Return a new buffer extended by `margins` ((top, bottom), (left, right)) using `strategy`."""
        return ImageBuffer(strategy.pad(self._data, margins), self._model)

    def copy(self) -> "ImageBuffer":
        return ImageBuffer(self._data.copy(), self._model)

    # ====[ Dunder ]====
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImageBuffer):
            return NotImplemented
        return (
            self._model == other._model
            and self.shape == other.shape
            and bool(np.array_equal(self._data, other._data))
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        ownership = "owned" if self._owns_data else ("borrowed" if self.writable else "borrowed-ro")
        return (
            f"ImageBuffer(shape={self.shape}, dtype={self.dtype}, "
            f"model={self._model.name}, {ownership})"
        )
