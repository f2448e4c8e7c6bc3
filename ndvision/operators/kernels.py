# ==================================================
# ================  MODULE: kernels  ===============
# ==================================================
from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from ndvision.core.errors import (
    EmptyKernelError,
    InvalidCenterError,
    InvalidDimensionError,
    InvalidParameterError,
)
from ndvision.core.pixel_types import DTypeLike, check_kernel_dtype

# Public API
__all__ = ["Kernel", "KernelBuilder", "default_center"]

SOBEL_X = np.array([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=np.float64)
LAPLACE_DIAGONAL_2D = np.array([[-1, -1, -1], [-1, 8, -1], [-1, -1, -1]], dtype=np.float64)


def default_center(shape: Sequence[int]) -> Tuple[int, ...]:
    """Center tap per axis: (n - 1) // 2 (the lower middle for even sizes)."""
    return tuple((int(n) - 1) // 2 for n in shape)


# ==================================================
# ==================== Kernel ======================
# ==================================================
class Kernel:
    """
    Immutable N-D coefficient array with a center offset.

    Parameters
    ----------
    coefficients : array-like
        Kernel taps. Copied and made read-only.
    center : sequence of int, optional
        Tap aligned with the output pixel; defaults to `(n - 1) // 2` per axis.
    name : str, default "custom"
        Label used in logs and reprs.
    dtype : numpy dtype-like, optional
        Coefficient type (signed integer or floating). Defaults to the dtype
        of `coefficients`, or float64 when that is not a usable kernel dtype.

    Raises
    ------
    EmptyKernelError
        If any axis has zero length.
    InvalidCenterError
        If the center has the wrong rank or lies outside the coefficients.
    InvalidParameterError
        If the dtype cannot represent the taps.
    """

    __slots__ = ("_coefficients", "_center", "_name")

    def __init__(
        self,
        coefficients: Union[np.ndarray, Sequence],
        center: Optional[Sequence[int]] = None,
        name: str = "custom",
        dtype: Optional[DTypeLike] = None,
    ) -> None:
        taps = np.asarray(coefficients)
        if taps.ndim == 0:
            raise InvalidDimensionError("[Kernel] Coefficients must have at least one axis.")
        if any(n == 0 for n in taps.shape):
            raise EmptyKernelError(f"[Kernel] Kernel '{name}' has an empty axis: shape {taps.shape}.")

        if dtype is None:
            dtype = taps.dtype if np.issubdtype(taps.dtype, np.signedinteger) else np.float64
        wide = taps.astype(np.float64)
        dt = check_kernel_dtype(dtype, integral_taps=bool(np.all(wide == np.round(wide))))

        center = default_center(taps.shape) if center is None else tuple(int(c) for c in center)
        if len(center) != taps.ndim:
            raise InvalidCenterError(
                f"[Kernel] Center {center} has rank {len(center)}, kernel has rank {taps.ndim}."
            )
        if any(c < 0 or c >= n for c, n in zip(center, taps.shape)):
            raise InvalidCenterError(f"[Kernel] Center {center} outside kernel shape {taps.shape}.")

        data = np.array(taps, dtype=dt, copy=True)
        data.flags.writeable = False
        self._coefficients = data
        self._center = center
        self._name = name

    @property
    def coefficients(self) -> np.ndarray:
        return self._coefficients

    @property
    def center(self) -> Tuple[int, ...]:
        return self._center

    @property
    def name(self) -> str:
        return self._name

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self._coefficients.shape)

    @property
    def ndim(self) -> int:
        return self._coefficients.ndim

    @property
    def dtype(self) -> np.dtype:
        return self._coefficients.dtype

    def sum(self) -> float:
        return float(self._coefficients.astype(np.float64).sum())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Kernel):
            return NotImplemented
        return self._center == other._center and bool(np.array_equal(self._coefficients, other._coefficients))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Kernel(name={self._name!r}, shape={self.shape}, center={self._center}, dtype={self.dtype})"


# ==================================================
# ================ KernelBuilder ===================
# ==================================================
class KernelBuilder:
    """
    Fluent constructor for the usual image kernels.

    Examples
    --------
    >>> KernelBuilder().with_size(5, 5).build_gaussian(1.0)
    >>> KernelBuilder().build_sobel_horizontal()

    Notes
    -----
    - Sizes may have any rank >= 1; Sobel kernels are 2-D only.
    - Fixed 3-wide kernels (Laplace, Sobel) take only the rank from `with_size`.
    - The default coefficient dtype is float64.
    """

    def __init__(self) -> None:
        self._size: Optional[Tuple[int, ...]] = None
        self._dtype: np.dtype = np.dtype(np.float64)
        self._center: Optional[Tuple[int, ...]] = None

    # ====[ Fluent setters ]====
    def with_size(self, rows: int, cols: Optional[int] = None, *more: int) -> "KernelBuilder":
        size = (rows,) if cols is None else (rows, cols, *more)
        for n in size:
            if not isinstance(n, (int, np.integer)) or n <= 0:
                raise InvalidDimensionError(f"[KernelBuilder] Kernel sizes must be positive integers, got {size}.")
        self._size = tuple(int(n) for n in size)
        return self

    def with_dtype(self, dtype: DTypeLike) -> "KernelBuilder":
        self._dtype = check_kernel_dtype(dtype)
        return self

    def with_center(self, *center: int) -> "KernelBuilder":
        if len(center) == 1 and isinstance(center[0], (tuple, list)):
            center = tuple(center[0])
        self._center = tuple(int(c) for c in center)
        return self

    # ====[ Internals ]====
    def _rank(self, default: int = 2) -> int:
        return len(self._size) if self._size is not None else default

    def _make(self, taps: np.ndarray, name: str, center: Optional[Sequence[int]] = None) -> Kernel:
        return Kernel(taps, center=center if center is not None else self._center, name=name, dtype=self._dtype)

    # ====[ Builders ]====
    def build_box_linear(self, normalise: bool = True) -> Kernel:
        """Uniform kernel; taps are 1/prod(size) when `normalise`, else 1."""
        size = self._size or (3, 3)
        value = 1.0 / float(np.prod(size)) if normalise else 1.0
        return self._make(np.full(size, value, dtype=np.float64), "box_linear")

    def build_gaussian(self, sigma: Union[float, Sequence[float]], truncate: float = 3.0) -> Kernel:
        """
        Sampled Gaussian kernel, renormalised to sum 1.

        Parameters
        ----------
        sigma : float or sequence of float
            Standard deviation, one value or one per axis.
        truncate : float, default 3.0
            Radius (in sigmas) used only when no size was configured:
            each axis gets `2 * floor(truncate * sigma) + 1` taps.

        Returns
        -------
        Kernel
            Gaussian centred on the kernel center (sampled at integer offsets).

        Raises
        ------
        InvalidParameterError
            If a sigma is not strictly positive, or the dtype is integral.
        """
        if isinstance(sigma, (int, float, np.integer, np.floating)):
            sigmas = [float(sigma)] * self._rank()
        else:
            sigmas = [float(s) for s in sigma]
            if self._size is not None and len(sigmas) != len(self._size):
                raise InvalidDimensionError(
                    f"[KernelBuilder] {len(sigmas)} sigmas given for a rank-{len(self._size)} kernel."
                )
        if not sigmas or any(not s > 0 for s in sigmas):
            raise InvalidParameterError(f"[KernelBuilder] Gaussian sigma must be > 0, got {sigma}.")
        if truncate <= 0:
            raise InvalidParameterError(f"[KernelBuilder] truncate must be > 0, got {truncate}.")

        size = self._size or tuple(int(2 * math.floor(truncate * s) + 1) for s in sigmas)
        center = self._center if self._center is not None else default_center(size)
        if len(center) != len(size):
            raise InvalidCenterError(f"[KernelBuilder] Center {center} does not match size {size}.")

        taps = np.ones(size, dtype=np.float64)
        for axis, (n, c, s) in enumerate(zip(size, center, sigmas)):
            offsets = np.arange(n, dtype=np.float64) - c
            profile = np.exp(-(offsets ** 2) / (2.0 * s * s))
            shape = [1] * len(size)
            shape[axis] = n
            taps = taps * profile.reshape(shape)
        taps /= taps.sum()
        return self._make(taps, "gaussian", center=center)

    def build_laplace(self, diagonal: bool = False) -> Kernel:
        """
        Discrete Laplacian over a 3-wide neighbourhood of the configured rank.

        The standard form puts -1 on the 2*ndim direct neighbours, the diagonal
        form puts -1 on every neighbour; the center balances the sum to 0.
        """
        rank = self._rank()
        shape = (3,) * rank
        mid = (1,) * rank
        if diagonal:
            taps = -np.ones(shape, dtype=np.float64)
        else:
            taps = np.zeros(shape, dtype=np.float64)
            for axis in range(rank):
                for side in (0, 2):
                    idx = list(mid)
                    idx[axis] = side
                    taps[tuple(idx)] = -1.0
        taps[mid] = 0.0
        taps[mid] = -taps.sum()
        return self._make(taps, "laplace_diagonal" if diagonal else "laplace")

    def _check_planar(self, name: str) -> None:
        if self._rank() != 2:
            raise InvalidDimensionError(f"[KernelBuilder] {name} kernels are 2-D only, got rank {self._rank()}.")

    def build_sobel_horizontal(self) -> Kernel:
        """Horizontal derivative: positive where intensity grows to the right."""
        self._check_planar("Sobel")
        return self._make(SOBEL_X, "sobel_x")

    def build_sobel_vertical(self) -> Kernel:
        """Vertical derivative: positive where intensity grows downward."""
        self._check_planar("Sobel")
        return self._make(SOBEL_X.T, "sobel_y")

    def build_from_coefficients(
        self,
        coefficients: Union[np.ndarray, Sequence],
        center: Optional[Sequence[int]] = None,
    ) -> Kernel:
        """Wrap caller taps; the center defaults to the builder's center, then (n-1)//2."""
        taps = np.asarray(coefficients)
        if taps.size and not np.issubdtype(taps.dtype, np.number):
            raise InvalidParameterError(f"[KernelBuilder] Non-numeric coefficients ({taps.dtype}).")
        return self._make(taps, "custom", center=center)
