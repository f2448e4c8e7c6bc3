# ==================================================
# ==============  MODULE: convolution  =============
# ==================================================
from __future__ import annotations

import logging
from typing import Any, Optional, Union

import numpy as np
import torch
import torch.nn.functional as F
from joblib import Parallel, delayed
from numpy.lib.stride_tricks import sliding_window_view
from scipy.ndimage import correlate

from ndvision.core.config import ConvolutionConfig, GlobalConfig
from ndvision.core.errors import DimensionMismatchError
from ndvision.core.image_buffer import ImageBuffer
from ndvision.core.padding import PaddingStrategy, kernel_margins, resolve_padding
from ndvision.core.pixel_types import ACCUMULATOR_DTYPE, DTypeLike, saturating_cast
from ndvision.operators.kernels import Kernel
from ndvision.utils.decorators import log_exceptions
from ndvision.utils.logger import get_logger

# Public API
__all__ = ["Convolver", "convolve"]

ImageLike = Union[ImageBuffer, np.ndarray]
KernelLike = Union[Kernel, np.ndarray]


# ==================================================
# ================== Convolver =====================
# ==================================================
class Convolver:
    """
    2-D correlation of an image buffer with a kernel, channel by channel.

    For every output pixel and channel:

        out[r, c, ch] = sum_{i, j} k[i, j] * sample(r + i - cr, c + j - cc, ch)

    where (cr, cc) is the kernel center and `sample` is the padding strategy.
    The kernel is not flipped. Sums are accumulated in float64 then saturated
    into the output dtype.

    Supported strategies:
    - 'direct'  : NumPy sliding windows over the strategy's bulk padding
    - 'classic' : per-tap loop through `PaddingStrategy.sample`
    - 'ndimage' : `scipy.ndimage.correlate` with the origin taken from the center
    - 'torch'   : `F.pad` + `F.conv2d` in float64

    Notes
    -----
    - No-Padding shrinks the output to (rows - kr + 1, cols - kc + 1); output
      (i, j) is centred on input (i + cr, j + cc).
    - Channels are independent; with a non-sequential `GlobalConfig.backend`
      they are dispatched through joblib.
    - The input buffer is never modified.
    """

    def __init__(
        self,
        conv_cfg: Optional[ConvolutionConfig] = None,
        global_cfg: Optional[GlobalConfig] = None,
    ) -> None:
        """
        Parameters
        ----------
        conv_cfg : ConvolutionConfig, optional
            Strategy, default padding and output dtype.
        global_cfg : GlobalConfig, optional
            joblib backend, torch device and logging options.
        """
        # ====[ Configuration ]====
        self.conv_cfg: ConvolutionConfig = conv_cfg if conv_cfg is not None else ConvolutionConfig()
        self.global_cfg: GlobalConfig = global_cfg if global_cfg is not None else GlobalConfig()

        self.strategy: str = self.conv_cfg.conv_strategy
        self.padding: PaddingStrategy = resolve_padding(self.conv_cfg.padding, self.conv_cfg.constant_value)
        self.output_dtype: Any = self.conv_cfg.output_dtype

        self.backend: str = self.global_cfg.backend.lower()
        self.n_jobs: int = self.global_cfg.n_jobs
        self.device: str = self.global_cfg.device
        self.verbose: bool = bool(self.global_cfg.verbose)

        self.logger: logging.Logger = get_logger(
            "ndvision.convolution",
            log_dir=self.global_cfg.log_dir,
            level=logging.DEBUG if self.verbose else logging.INFO,
        )
        self.logger.debug(
            f"[Convolver] strategy={self.strategy} padding={self.padding.name} backend={self.backend}"
        )

    # --------------- Public API ---------------

    def __call__(
        self,
        image: ImageLike,
        kernel: KernelLike,
        padding: Union[str, PaddingStrategy, None] = None,
        output_dtype: Optional[DTypeLike] = None,
    ) -> ImageBuffer:
        """
        Convolve `image` with `kernel`.

        Parameters
        ----------
        image : ImageBuffer or np.ndarray
            Input image; a 2-D array is read as one channel.
        kernel : Kernel or np.ndarray
            2-D kernel. A raw array is wrapped with its default center.
        padding : str or PaddingStrategy, optional
            Overrides the configured padding for this call.
        output_dtype : numpy dtype-like, optional
            Overrides the configured output dtype ("auto" = input dtype).

        Returns
        -------
        ImageBuffer
            New buffer with the input's channel count.

        Raises
        ------
        DimensionMismatchError
            If the kernel is not 2-D, the image is empty, or the kernel does
            not fit inside the image under No-Padding.
        EmptyKernelError, InvalidCenterError
            When a raw kernel array cannot form a valid kernel.
        """
        buffer = image if isinstance(image, ImageBuffer) else ImageBuffer.from_array(image, copy=False)
        kern = kernel if isinstance(kernel, Kernel) else Kernel(kernel)
        strategy = self.padding if padding is None else resolve_padding(padding, self.conv_cfg.constant_value)

        self._validate(buffer, kern, strategy)

        target = output_dtype if output_dtype is not None else self.output_dtype
        target = buffer.dtype if target is None or (isinstance(target, str) and target == "auto") else np.dtype(target)

        self.logger.debug(
            f"[Convolver] {kern.name}{kern.shape} on {buffer.shape} "
            f"(strategy={self.strategy}, padding={strategy.name}, out={target})"
        )

        taps = kern.coefficients.astype(ACCUMULATOR_DTYPE)
        channels = range(buffer.channels)
        if self.backend == "sequential" or buffer.channels == 1:
            planes = [self._convolve_channel(buffer, ch, taps, kern.center, strategy) for ch in channels]
        else:
            planes = Parallel(n_jobs=self.n_jobs, backend=self.backend)(
                delayed(self._convolve_channel)(buffer, ch, taps, kern.center, strategy) for ch in channels
            )

        out = np.stack(planes, axis=-1)
        return ImageBuffer(saturating_cast(out, target), buffer.model)

    # --------------- Validation ---------------

    @staticmethod
    def _validate(buffer: ImageBuffer, kernel: Kernel, strategy: PaddingStrategy) -> None:
        if kernel.ndim != 2:
            raise DimensionMismatchError(
                f"[Convolver] Image convolution needs a 2-D kernel, got rank {kernel.ndim}."
            )
        if buffer.rows == 0 or buffer.cols == 0:
            raise DimensionMismatchError(f"[Convolver] Cannot convolve an empty image {buffer.shape}.")
        if not strategy.will_pad and (kernel.shape[0] > buffer.rows or kernel.shape[1] > buffer.cols):
            raise DimensionMismatchError(
                f"[Convolver] Kernel {kernel.shape} larger than image {buffer.shape[:2]} without padding."
            )

    # --------------- Dispatch ---------------

    def _convolve_channel(
        self,
        buffer: ImageBuffer,
        channel: int,
        taps: np.ndarray,
        center: tuple,
        padding: PaddingStrategy,
    ) -> np.ndarray:
        if self.strategy == "classic":
            return self._classic(buffer, channel, taps, center, padding)

        plane = buffer.data[:, :, channel].astype(ACCUMULATOR_DTYPE)
        if self.strategy == "direct":
            return self._direct(plane, taps, center, padding)
        if self.strategy == "ndimage":
            return self._ndimage(plane, taps, center, padding)
        if self.strategy == "torch":
            return self._torch(plane, taps, center, padding)
        raise ValueError(f"[Convolver] Unsupported strategy '{self.strategy}'.")

    # ====[ NumPy sliding windows ]====
    @staticmethod
    def _direct(plane: np.ndarray, taps: np.ndarray, center: tuple, padding: PaddingStrategy) -> np.ndarray:
        margins = kernel_margins(taps.shape, center)
        padded = padding.pad(plane[:, :, np.newaxis], margins)[:, :, 0]
        windows = sliding_window_view(padded, taps.shape)  # (out_r, out_c, kr, kc)
        return np.einsum("ijkl,kl->ij", windows, taps)

    # ====[ Per-sample reference path ]====
    @staticmethod
    def _classic(
        buffer: ImageBuffer,
        channel: int,
        taps: np.ndarray,
        center: tuple,
        padding: PaddingStrategy,
    ) -> np.ndarray:
        kr, kc = taps.shape
        cr, cc = center
        out_rows, out_cols = padding.output_shape(buffer.rows, buffer.cols, taps.shape)
        # Without padding, output (0, 0) sits on input (cr, cc).
        shift_r, shift_c = (0, 0) if padding.will_pad else (cr, cc)

        out = np.zeros((out_rows, out_cols), dtype=ACCUMULATOR_DTYPE)
        for r in range(out_rows):
            for c in range(out_cols):
                acc = 0.0
                for i in range(kr):
                    for j in range(kc):
                        value = padding.sample(buffer, r + shift_r + i - cr, c + shift_c + j - cc, channel)
                        acc += taps[i, j] * float(value)
                out[r, c] = acc
        return out

    # ====[ scipy.ndimage ]====
    @staticmethod
    def _ndimage(plane: np.ndarray, taps: np.ndarray, center: tuple, padding: PaddingStrategy) -> np.ndarray:
        # scipy aligns tap n//2 + origin with the output pixel.
        origin = [c - n // 2 for c, n in zip(center, taps.shape)]
        if padding.will_pad:
            return correlate(
                plane, taps, mode=padding.ndimage_mode, cval=padding.fill_value, origin=origin
            )

        full = correlate(plane, taps, mode="nearest", origin=origin)
        out_rows, out_cols = padding.output_shape(plane.shape[0], plane.shape[1], taps.shape)
        cr, cc = center
        return full[cr:cr + out_rows, cc:cc + out_cols]

    # ====[ torch conv2d ]====
    @torch.no_grad()
    def _torch(self, plane: np.ndarray, taps: np.ndarray, center: tuple, padding: PaddingStrategy) -> np.ndarray:
        x = torch.from_numpy(np.ascontiguousarray(plane)).to(self.device).unsqueeze(0).unsqueeze(0)  # [1, 1, H, W]
        k = torch.from_numpy(np.ascontiguousarray(taps)).to(self.device).unsqueeze(0).unsqueeze(0)   # [1, 1, Kh, Kw]

        if padding.will_pad:
            (top, bottom), (left, right) = kernel_margins(taps.shape, center)
            pad = (left, right, top, bottom)
            if padding.torch_mode == "constant":
                x = F.pad(x, pad, mode="constant", value=padding.fill_value)
            else:
                x = F.pad(x, pad, mode=padding.torch_mode)

        y = F.conv2d(x, k)
        return y.squeeze(0).squeeze(0).cpu().numpy()


# ==================================================
# ============  Functional entry point  ============
# ==================================================
@log_exceptions(raise_exception=True)
def convolve(
    image: ImageLike,
    kernel: KernelLike,
    padding: Union[str, PaddingStrategy, None] = None,
    output_dtype: Optional[DTypeLike] = None,
    conv_cfg: Optional[ConvolutionConfig] = None,
    global_cfg: Optional[GlobalConfig] = None,
) -> ImageBuffer:
    """
    Convolve `image` with `kernel` (edge-replicate padding unless told otherwise).

    See `Convolver` for the exact formula and shape rules.
    """
    return Convolver(conv_cfg=conv_cfg, global_cfg=global_cfg)(
        image, kernel, padding=padding, output_dtype=output_dtype
    )
