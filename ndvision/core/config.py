# ==================================================
# ================  MODULE: config  ================
# ==================================================
from __future__ import annotations

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

# Public API
__all__ = [
    "BACKENDS",
    "CONV_STRATEGIES",
    "PADDING_NAMES",
    "GlobalConfig",
    "ConvolutionConfig",
    "CannyConfig",
]

BACKENDS = ("sequential", "threading", "loky")
CONV_STRATEGIES = ("direct", "classic", "ndimage", "torch")
PADDING_NAMES = ("none", "zero", "constant", "edge")


def _check_choice(owner: str, key: str, value: Any, choices: tuple) -> None:
    if value not in choices:
        raise ValueError(f"[{owner}] Invalid {key} '{value}'. Choose from {choices}.")


def _print_summary(title: str, info: Dict[str, Any]) -> None:
    print(f"=== [ {title} Summary ] ===")
    for k, v in info.items():
        print(f"{k:<18}: {v}")


# ==================================================
# ===============  CLASS: GlobalConfig  ============
# ==================================================
@dataclass
class GlobalConfig:
    """
    Global configuration shared by every operator.

    Attributes
    ----------
    device : str, default "cpu"
        Torch device used by the torch convolution strategy.
    backend : str, default "sequential"
        joblib backend for per-channel work ("sequential", "threading", "loky").
    n_jobs : int, default -1
        Number of joblib workers when `backend` is not sequential.
    verbose : bool, default False
        If True, operator loggers run at DEBUG level.
    log_dir : str or Path, optional
        When set, operator loggers also write to a daily rotating file there.
    """

    device: str = "cpu"
    backend: str = "sequential"
    n_jobs: int = -1
    verbose: bool = False
    log_dir: Optional[Union[str, Path]] = None

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        _check_choice("GlobalConfig", "backend", self.backend, BACKENDS)
        if self.n_jobs == 0:
            raise ValueError("[GlobalConfig] n_jobs must be non-zero.")

    def update_config(self, **kwargs) -> "GlobalConfig":
        """Dynamically update configuration attributes (in-place)."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise AttributeError(f"[GlobalConfig] Unknown config key: '{key}'")
        self._validate()
        return self

    def summary(self, printout: bool = True) -> Dict[str, Any]:
        """Return or print a summary of the global configuration."""
        info = asdict(self)
        if printout:
            _print_summary("GlobalConfig", info)
        return info


# ==================================================
# ===========  CLASS: ConvolutionConfig  ===========
# ==================================================
@dataclass
class ConvolutionConfig:
    """
    Configuration for the 2-D convolution engine.

    Attributes
    ----------
    conv_strategy : str, default "direct"
        "direct" (vectorised NumPy windows), "classic" (per-sample padding
        lookups), "ndimage" (scipy.ndimage.correlate) or "torch" (conv2d).
    padding : str or PaddingStrategy, default "edge"
        Boundary policy, given by name ("none", "zero", "constant", "edge")
        or as a strategy instance.
    constant_value : float, default 0.0
        Fill value used when `padding="constant"`.
    output_dtype : str or dtype, default "auto"
        Result element type; "auto" keeps the input dtype.
    """

    conv_strategy: str = "direct"
    padding: Any = "edge"
    constant_value: float = 0.0
    output_dtype: Any = "auto"

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        _check_choice("ConvolutionConfig", "conv_strategy", self.conv_strategy, CONV_STRATEGIES)
        if isinstance(self.padding, str):
            _check_choice("ConvolutionConfig", "padding", self.padding, PADDING_NAMES)

    def update_config(self, **kwargs) -> "ConvolutionConfig":
        """Dynamically update configuration attributes (in-place)."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise AttributeError(f"[ConvolutionConfig] Unknown config key: '{key}'")
        self._validate()
        return self

    def summary(self, printout: bool = True) -> Dict[str, Any]:
        info = {
            "conv_strategy": self.conv_strategy,
            "padding": self.padding,
            "constant_value": self.constant_value,
            "output_dtype": self.output_dtype,
        }
        if printout:
            _print_summary("ConvolutionConfig", info)
        return info


# ==================================================
# ==============  CLASS: CannyConfig  ==============
# ==================================================
@dataclass
class CannyConfig:
    """
    Configuration for the Canny edge detector (operators/edge_detector.py).

    Thresholds are expressed in the intensity units of the input image.
    Smoothing and gradients always use edge-replicate padding, so the edge
    map keeps the input's spatial shape.

    Attributes
    ----------
    sigma : float or (float, float), default 1.0
        Gaussian standard deviation, isotropic or per axis (rows, cols).
    low_threshold, high_threshold : float
        Hysteresis thresholds, 0 <= low <= high.
    truncate : float, default 3.0
        Gaussian radius in sigmas.
    blur : Kernel or array-like, optional
        Custom 2-D smoothing kernel; replaces the Gaussian when set.
    """

    sigma: Union[float, Tuple[float, float]] = 1.0
    low_threshold: float = 20.0
    high_threshold: float = 50.0
    truncate: float = 3.0
    blur: Optional[Any] = None

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        if self.truncate <= 0:
            raise ValueError("[CannyConfig] truncate must be positive.")

    def update_config(self, **kwargs) -> "CannyConfig":
        """Dynamically update configuration attributes (in-place)."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise AttributeError(f"[CannyConfig] Unknown config key: '{key}'")
        self._validate()
        return self

    def summary(self, printout: bool = True) -> Dict[str, Any]:
        info = asdict(self)
        if printout:
            _print_summary("CannyConfig", info)
        return info
