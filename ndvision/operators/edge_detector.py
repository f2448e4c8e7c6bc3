# ==================================================
# =============  MODULE: edge_detector  ============
# ==================================================
from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np

from ndvision.core.config import CannyConfig, ConvolutionConfig, GlobalConfig
from ndvision.core.errors import (
    DimensionMismatchError,
    InvalidParameterError,
    InvalidThresholdError,
    UnsupportedChannelCountError,
)
from ndvision.core.image_buffer import ColourModel, ImageBuffer
from ndvision.core.padding import EdgeReplicate, PaddingStrategy
from ndvision.core.pixel_types import ACCUMULATOR_DTYPE
from ndvision.operators.convolution import Convolver
from ndvision.operators.kernels import Kernel, KernelBuilder
from ndvision.operators.sobel import sobel_gradients
from ndvision.utils.decorators import TimerManager, log_exceptions
from ndvision.utils.logger import get_logger

# Public API
__all__ = [
    "CannyStage",
    "CannyEdgeDetector",
    "canny",
    "quantise_direction",
    "non_maximum_suppression",
    "hysteresis_threshold",
]

# (backward, forward) neighbour offsets (d_row, d_col) per quantised direction.
# Rows grow downward, so a 45 degree gradient points to the lower right.
NEIGHBOURS = {
    0: ((0, -1), (0, 1)),      # W / E
    45: ((-1, -1), (1, 1)),    # NW / SE
    90: ((-1, 0), (1, 0)),     # N / S
    135: ((-1, 1), (1, -1)),   # NE / SW
}

EIGHT_CONNECTED = tuple((dr, dc) for dr in (-1, 0, 1) for dc in (-1, 0, 1) if (dr, dc) != (0, 0))


class CannyStage(Enum):
    """Pipeline stages, in execution order."""

    SMOOTHING = "smoothing"
    GRADIENT = "gradient"
    SUPPRESSION = "non_maximum_suppression"
    HYSTERESIS = "hysteresis"


# ==================================================
# =================  Stage helpers  ================
# ==================================================
def quantise_direction(gx: np.ndarray, gy: np.ndarray) -> np.ndarray:
    """
    Fold `atan2(gy, gx)` into [0, 180) degrees and snap it to 0/45/90/135.

    Bins are centred on the principal angles:
    [0, 22.5) and [157.5, 180) -> 0, [22.5, 67.5) -> 45,
    [67.5, 112.5) -> 90, [112.5, 157.5) -> 135.
    """
    angle = np.degrees(np.arctan2(gy, gx)) % 180.0
    return np.select(
        [(angle < 22.5) | (angle >= 157.5), angle < 67.5, angle < 112.5],
        [0, 45, 90],
        default=135,
    ).astype(np.int16)


def non_maximum_suppression(magnitude: np.ndarray, direction: np.ndarray) -> np.ndarray:
    """
    Thin ridges of the gradient magnitude to one pixel.

    Parameters
    ----------
    magnitude : np.ndarray
        (rows, cols) gradient magnitude.
    direction : np.ndarray
        (rows, cols) quantised direction in {0, 45, 90, 135}.

    Returns
    -------
    np.ndarray
        Magnitude where the pixel is a local maximum along its direction,
        0 elsewhere.

    Notes
    -----
    A pixel survives when it is strictly greater than its backward neighbour
    and greater than or equal to its forward neighbour, so a plateau two
    pixels wide keeps exactly one of them. Pixels whose neighbour falls
    outside the image are suppressed.
    """
    magnitude = np.asarray(magnitude, dtype=ACCUMULATOR_DTYPE)
    if magnitude.shape != np.shape(direction) or magnitude.ndim != 2:
        raise DimensionMismatchError(
            f"[non_maximum_suppression] magnitude {magnitude.shape} and direction "
            f"{np.shape(direction)} must be matching 2-D arrays."
        )
    rows, cols = magnitude.shape
    padded = np.pad(magnitude, 1, mode="constant", constant_values=np.nan)

    def shifted(dr: int, dc: int) -> np.ndarray:
        return padded[1 + dr:1 + dr + rows, 1 + dc:1 + dc + cols]

    keep = np.zeros(magnitude.shape, dtype=bool)
    for angle, (backward, forward) in NEIGHBOURS.items():
        mask = direction == angle
        with np.errstate(invalid="ignore"):
            local_max = (magnitude > shifted(*backward)) & (magnitude >= shifted(*forward))
        keep |= mask & local_max

    return np.where(keep, magnitude, 0.0)


def hysteresis_threshold(magnitude: np.ndarray, low: float, high: float) -> np.ndarray:
    """
    Double threshold plus 8-connected edge tracking.

    Pixels `>= high` are edges; pixels in [low, high) become edges only when
    connected to an edge through other pixels `>= low`. Only surviving
    pixels (magnitude > 0 after suppression) are classified, so zero
    thresholds never flood the image. Uses an explicit worklist, so
    arbitrarily long chains are safe.

    Returns
    -------
    np.ndarray
        Boolean edge map of the magnitude's shape.
    """
    _check_thresholds(low, high)
    magnitude = np.asarray(magnitude)
    rows, cols = magnitude.shape

    alive = magnitude > 0
    candidate = alive & (magnitude >= low)
    edges = alive & (magnitude >= high)
    queue = deque(zip(*np.nonzero(edges)))

    while queue:
        r, c = queue.popleft()
        for dr, dc in EIGHT_CONNECTED:
            nr, nc = r + dr, c + dc
            if 0 <= nr < rows and 0 <= nc < cols and candidate[nr, nc] and not edges[nr, nc]:
                edges[nr, nc] = True
                queue.append((nr, nc))
    return edges


def _check_thresholds(low: float, high: float) -> None:
    if low < 0 or high < 0:
        raise InvalidThresholdError(f"[Canny] Thresholds must be non-negative, got low={low}, high={high}.")
    if low > high:
        raise InvalidThresholdError(f"[Canny] low_threshold {low} exceeds high_threshold {high}.")


# ==================================================
# ===============  CannyEdgeDetector  ==============
# ==================================================
class CannyEdgeDetector:
    """
    Canny edge detector for single-channel buffers.

    Stages (see `CannyStage`):
    1. Smoothing with the Gaussian (or a custom blur) kernel, float64 output
    2. Sobel gradients, magnitude `hypot(gx, gy)` and quantised direction
    3. Non-maximum suppression
    4. Hysteresis thresholding

    Thresholds are in the intensity units of the input (e.g. 0..255 for
    uint8); the input is not rescaled. Each call records per-stage timings
    in `self.timings` and logs them at DEBUG. Padding is always edge
    replicate, so the edge map keeps the input shape.
    """

    def __init__(
        self,
        canny_cfg: Optional[CannyConfig] = None,
        conv_cfg: Optional[ConvolutionConfig] = None,
        global_cfg: Optional[GlobalConfig] = None,
    ) -> None:
        """
        Parameters
        ----------
        canny_cfg : CannyConfig, optional
            Sigma (isotropic or per axis), thresholds, Gaussian truncation
            and an optional custom blur kernel.
        conv_cfg : ConvolutionConfig, optional
            Convolution strategy used for smoothing and gradients.
        global_cfg : GlobalConfig, optional
            Backend and logging options.
        """
        self.canny_cfg: CannyConfig = canny_cfg if canny_cfg is not None else CannyConfig()
        self.conv_cfg: ConvolutionConfig = conv_cfg if conv_cfg is not None else ConvolutionConfig()
        self.global_cfg: GlobalConfig = global_cfg if global_cfg is not None else GlobalConfig()

        self.sigma = self.canny_cfg.sigma
        self.low: float = self.canny_cfg.low_threshold
        self.high: float = self.canny_cfg.high_threshold
        self.truncate: float = self.canny_cfg.truncate
        # Fixed so the edge map keeps the input's spatial shape.
        self.padding: PaddingStrategy = EdgeReplicate()

        sigmas = np.atleast_1d(np.asarray(self.sigma, dtype=np.float64))
        if sigmas.ndim != 1 or sigmas.size not in (1, 2) or not np.all(sigmas > 0):
            raise InvalidParameterError(
                f"[CannyEdgeDetector] sigma must be > 0, one value or one per axis, got {self.sigma}."
            )
        _check_thresholds(self.low, self.high)

        if self.canny_cfg.blur is not None:
            self.blur: Kernel = (
                self.canny_cfg.blur if isinstance(self.canny_cfg.blur, Kernel) else Kernel(self.canny_cfg.blur)
            )
        else:
            sigma = float(sigmas[0]) if sigmas.size == 1 else tuple(float(s) for s in sigmas)
            self.blur = KernelBuilder().build_gaussian(sigma, truncate=self.truncate)
        if self.blur.ndim != 2:
            raise DimensionMismatchError(
                f"[CannyEdgeDetector] Blur kernel must be 2-D, got shape {self.blur.shape}."
            )

        self.convolver = Convolver(conv_cfg=self.conv_cfg, global_cfg=self.global_cfg)
        self.timings = TimerManager()
        self.logger: logging.Logger = get_logger(
            "ndvision.canny",
            log_dir=self.global_cfg.log_dir,
            level=logging.DEBUG if self.global_cfg.verbose else logging.INFO,
        )
        self.logger.debug(f"[CannyEdgeDetector] blur={self.blur!r} low={self.low} high={self.high}")

    def __call__(self, image: Union[ImageBuffer, np.ndarray]) -> ImageBuffer:
        buffer = image if isinstance(image, ImageBuffer) else ImageBuffer.from_array(image, copy=False)
        if buffer.channels != 1:
            raise UnsupportedChannelCountError(
                f"[CannyEdgeDetector] Expected a single-channel image, got {buffer.channels} channels."
            )

        with self._stage(CannyStage.SMOOTHING):
            smoothed = self.smooth(buffer)
        with self._stage(CannyStage.GRADIENT):
            magnitude, direction = self.gradients(smoothed)
        with self._stage(CannyStage.SUPPRESSION):
            thinned = non_maximum_suppression(magnitude, direction)
        with self._stage(CannyStage.HYSTERESIS):
            edges = hysteresis_threshold(thinned, self.low, self.high)

        self.logger.debug(f"[CannyEdgeDetector] {int(edges.sum())} edge pixels on {buffer.shape[:2]}")
        self.timings.to_log(self.logger, level=logging.DEBUG)
        return ImageBuffer(edges[:, :, np.newaxis], ColourModel.GRAY)

    # ====[ Stages ]====
    def smooth(self, buffer: ImageBuffer) -> ImageBuffer:
        return self.convolver(buffer, self.blur, padding=self.padding, output_dtype=ACCUMULATOR_DTYPE)

    def gradients(self, smoothed: ImageBuffer) -> Tuple[np.ndarray, np.ndarray]:
        gx, gy = sobel_gradients(smoothed, self.padding, self.conv_cfg, self.global_cfg)
        gx_plane, gy_plane = gx.data[:, :, 0], gy.data[:, :, 0]
        return np.hypot(gx_plane, gy_plane), quantise_direction(gx_plane, gy_plane)

    def _stage(self, stage: CannyStage):
        self.logger.debug(f"[CannyEdgeDetector] stage -> {stage.value}")
        return self.timings.measure(stage.value)


# ==================================================
# ============  Functional entry point  ============
# ==================================================
@log_exceptions(raise_exception=True)
def canny(
    image: Union[ImageBuffer, np.ndarray],
    gaussian_sigma: float,
    low_threshold: float,
    high_threshold: float,
    conv_cfg: Optional[ConvolutionConfig] = None,
    global_cfg: Optional[GlobalConfig] = None,
) -> ImageBuffer:
    """
    Canny edge map of a single-channel image.

    Parameters
    ----------
    image : ImageBuffer or np.ndarray
        Grayscale input.
    gaussian_sigma : float
        Smoothing standard deviation, > 0.
    low_threshold, high_threshold : float
        Hysteresis thresholds in input intensity units, 0 <= low <= high.

    Returns
    -------
    ImageBuffer
        Boolean GRAY buffer, True on edge pixels.
    """
    cfg = CannyConfig(sigma=gaussian_sigma, low_threshold=low_threshold, high_threshold=high_threshold)
    return CannyEdgeDetector(canny_cfg=cfg, conv_cfg=conv_cfg, global_cfg=global_cfg)(image)
