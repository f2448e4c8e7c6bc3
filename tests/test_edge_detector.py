# ==================================================
# =============  TESTS: edge_detector  =============
# ==================================================
import logging

import numpy as np
import pytest

from ndvision.core.config import CannyConfig, ConvolutionConfig, GlobalConfig
from ndvision.core.errors import (
    DimensionMismatchError,
    InvalidParameterError,
    InvalidThresholdError,
    UnsupportedChannelCountError,
)
from ndvision.core.image_buffer import ColourModel, ImageBuffer
from ndvision.operators.edge_detector import (
    CannyEdgeDetector,
    CannyStage,
    canny,
    hysteresis_threshold,
    non_maximum_suppression,
    quantise_direction,
)
from ndvision.operators.kernels import Kernel


def edge_columns(edges):
    return np.nonzero(edges.data[:, :, 0].any(axis=0))[0].tolist()


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.messages = []

    def emit(self, record):
        self.messages.append(record.getMessage())


class TestCanny:
    """End-to-end edge maps"""

    def test_step_edge_single_column(self, step_edge):
        edges = canny(step_edge, 1.0, 20.0, 50.0)
        assert edges.dtype == np.bool_
        assert edges.shape == (16, 16, 1)
        assert edges.model is ColourModel.GRAY

        plane = edges.data[:, :, 0]
        columns = np.nonzero(plane.any(axis=0))[0].tolist()
        assert len(columns) == 1
        assert columns[0] in (7, 8)
        assert plane[:, columns[0]].all()

    @pytest.mark.parametrize("strategy", ["direct", "ndimage", "torch"])
    def test_strategies_agree(self, step_edge, strategy):
        reference = canny(step_edge, 1.0, 20.0, 50.0)
        detector = CannyEdgeDetector(
            CannyConfig(sigma=1.0, low_threshold=20.0, high_threshold=50.0),
            conv_cfg=ConvolutionConfig(conv_strategy=strategy),
        )
        out = detector(step_edge)
        assert out.data[:, 3:13, 0].any(axis=0).sum() == 1
        assert reference.data[:, :, 0].sum() == out.data[:, :, 0].sum()

    def test_uniform_image_has_no_edges(self):
        edges = canny(ImageBuffer.full(12, 12, 128), 1.4, 10.0, 30.0)
        assert not edges.data.any()

    def test_thresholds_use_input_units(self):
        data = np.zeros((16, 16), dtype=np.uint8)
        data[:, 8:] = 10
        assert not canny(data, 1.0, 20.0, 50.0).data.any()
        assert canny(data, 1.0, 5.0, 20.0).data.any()

    def test_square_outline(self):
        data = np.zeros((20, 20), dtype=np.uint8)
        data[6:14, 6:14] = 255
        plane = canny(data, 1.0, 20.0, 60.0).data[:, :, 0]
        assert plane.any()
        assert not plane[9:11, 9:11].any()
        assert not plane[:3, :].any()
        assert not plane[:, 17:].any()
        assert plane[4:16, 4:8].any() and plane[4:16, 12:16].any()

    def test_input_not_mutated(self, step_edge):
        before = step_edge.copy()
        canny(step_edge, 1.0, 20.0, 50.0)
        assert step_edge == before

    def test_stage_timings_recorded(self, step_edge):
        detector = CannyEdgeDetector()
        detector(step_edge)
        stats = detector.timings.to_dict()
        assert set(stats) == {stage.value for stage in CannyStage}
        assert all(entry["count"] == 1 for entry in stats.values())

    def test_stage_timings_logged_at_debug(self, step_edge):
        detector = CannyEdgeDetector(global_cfg=GlobalConfig(verbose=True))
        handler = RecordingHandler()
        detector.logger.addHandler(handler)
        try:
            detector(step_edge)
        finally:
            detector.logger.removeHandler(handler)
        timing_lines = [m for m in handler.messages if m.startswith("[timing]")]
        assert [m.split(":")[0] for m in timing_lines] == [
            f"[timing] {stage.value}" for stage in CannyStage
        ]

    @pytest.mark.parametrize("low, high", [(0.0, 50.0), (0.0, 0.0)])
    def test_zero_thresholds_only_mark_surviving_pixels(self, step_edge, low, high):
        edges = canny(step_edge, 1.0, low, high)
        assert edge_columns(edges) == edge_columns(canny(step_edge, 1.0, 20.0, 50.0))
        assert int(edges.data.sum()) == 16

    @pytest.mark.parametrize("shape", [(9, 13), (16, 16), (5, 30)])
    def test_edge_map_keeps_input_shape(self, shape):
        data = np.zeros(shape, dtype=np.uint8)
        data[:, shape[1] // 2:] = 200
        # Kernel wider than the image on purpose.
        edges = canny(data, 3.0, 10.0, 30.0)
        assert edges.shape == shape + (1,)


class TestCannySmoothing:
    """Per-axis sigma and custom blur kernels"""

    def test_per_axis_sigma_sets_kernel_shape(self):
        detector = CannyEdgeDetector(CannyConfig(sigma=(1.0, 2.0)))
        assert detector.blur.shape == (7, 13)

    def test_equal_axis_sigmas_match_scalar(self, step_edge):
        pair = CannyEdgeDetector(CannyConfig(sigma=(1.0, 1.0)))(step_edge)
        scalar = CannyEdgeDetector(CannyConfig(sigma=1.0))(step_edge)
        assert pair == scalar

    def test_anisotropic_sigma_finds_step(self, step_edge):
        edges = CannyEdgeDetector(CannyConfig(sigma=(0.5, 1.5)))(step_edge)
        columns = edge_columns(edges)
        assert len(columns) == 1 and columns[0] in (7, 8)

    def test_custom_blur_kernel_replaces_gaussian(self, step_edge):
        detector = CannyEdgeDetector(CannyConfig(blur=Kernel([[1]])))
        assert detector.blur == Kernel([[1]])
        edges = detector(step_edge)
        assert edge_columns(edges) == [7]
        assert edges.data[:, 7, 0].all()

    def test_custom_blur_from_array(self, step_edge):
        edges = CannyEdgeDetector(CannyConfig(blur=np.ones((3, 3)) / 9.0))(step_edge)
        assert edges.shape == step_edge.shape
        assert len(edge_columns(edges)) == 1

    def test_blur_must_be_two_dimensional(self):
        with pytest.raises(DimensionMismatchError):
            CannyEdgeDetector(CannyConfig(blur=Kernel([1, 2, 1])))

    @pytest.mark.parametrize("sigma", [(1.0, -1.0), (1.0, 1.0, 1.0)])
    def test_bad_sigma_pairs(self, sigma):
        with pytest.raises(InvalidParameterError):
            CannyEdgeDetector(CannyConfig(sigma=sigma))

    def test_padding_is_not_configurable(self):
        with pytest.raises(TypeError):
            CannyConfig(padding="none")


class TestCannyErrors:
    """Parameter validation"""

    def test_low_above_high(self, step_edge):
        with pytest.raises(InvalidThresholdError):
            canny(step_edge, 1.0, 50.0, 20.0)

    def test_negative_threshold(self, step_edge):
        with pytest.raises(InvalidThresholdError):
            canny(step_edge, 1.0, -1.0, 20.0)

    def test_equal_thresholds_allowed(self, step_edge):
        assert canny(step_edge, 1.0, 50.0, 50.0).data.any()

    @pytest.mark.parametrize("sigma", [0.0, -0.5])
    def test_non_positive_sigma(self, step_edge, sigma):
        with pytest.raises(InvalidParameterError):
            canny(step_edge, sigma, 20.0, 50.0)

    def test_colour_input_refused(self, rgb_image):
        with pytest.raises(UnsupportedChannelCountError):
            canny(rgb_image, 1.0, 20.0, 50.0)


class TestStages:
    """Direction quantisation, suppression and hysteresis helpers"""

    @pytest.mark.parametrize(
        "degrees, expected",
        [(0, 0), (10, 0), (170, 0), (-10, 0), (30, 45), (-150, 45), (100, 90), (-90, 90), (120, 135), (-45, 135)],
    )
    def test_quantise_direction(self, degrees, expected):
        rad = np.radians(degrees)
        out = quantise_direction(np.array([[np.cos(rad)]]), np.array([[np.sin(rad)]]))
        assert out[0, 0] == expected

    def test_nms_keeps_ridge(self):
        magnitude = np.array(
            [
                [0.0, 1.0, 0.0, 0.0],
                [0.0, 5.0, 3.0, 0.0],
                [0.0, 2.0, 0.0, 0.0],
            ]
        )
        direction = np.full(magnitude.shape, 90)
        out = non_maximum_suppression(magnitude, direction)
        assert out[1, 1] == 5.0
        assert out[1, 2] == 3.0
        assert out[0, 1] == 0.0 and out[2, 1] == 0.0

    def test_nms_plateau_keeps_one(self):
        magnitude = np.array([[0.0, 1.0, 4.0, 4.0, 1.0, 0.0]] * 3)
        direction = np.zeros(magnitude.shape, dtype=int)
        out = non_maximum_suppression(magnitude, direction)
        assert out[1].tolist() == [0.0, 0.0, 4.0, 0.0, 0.0, 0.0]

    def test_nms_diagonal_neighbours(self):
        magnitude = np.array([[1.0, 0.0, 0.0], [0.0, 2.0, 0.0], [0.0, 0.0, 3.0]])
        out_45 = non_maximum_suppression(magnitude, np.full((3, 3), 45))
        out_135 = non_maximum_suppression(magnitude, np.full((3, 3), 135))
        assert out_45[1, 1] == 0.0
        assert out_135[1, 1] == 2.0

    def test_hysteresis_links_weak_to_strong(self):
        magnitude = np.array([[0.2, 0.4, 0.0], [0.7, 0.5, 0.8], [0.1, 0.6, 0.0]])
        edges = hysteresis_threshold(magnitude, 0.45, 0.69)
        assert edges.tolist() == [[False, False, False], [True, True, True], [False, True, False]]

    def test_hysteresis_low_is_inclusive(self):
        magnitude = np.array([[0.2, 0.4, 0.0], [0.7, 0.5, 0.8], [0.1, 0.6, 0.0]])
        assert hysteresis_threshold(magnitude, 0.4, 0.69)[0, 1]

    def test_hysteresis_isolated_weak_dropped(self):
        magnitude = np.zeros((5, 5))
        magnitude[0, 0] = 10.0
        magnitude[3:5, 3:5] = 5.0
        edges = hysteresis_threshold(magnitude, 4.0, 8.0)
        assert edges[0, 0]
        assert not edges[3:5, 3:5].any()

    def test_hysteresis_long_chain(self):
        magnitude = np.full((1, 5000), 5.0)
        magnitude[0, 0] = 10.0
        assert hysteresis_threshold(magnitude, 4.0, 8.0).all()

    def test_hysteresis_ignores_suppressed_pixels(self):
        magnitude = np.zeros((4, 4))
        magnitude[1, 1] = 9.0
        magnitude[1, 2] = 0.5
        edges = hysteresis_threshold(magnitude, 0.0, 0.0)
        assert edges.sum() == 2
        assert edges[1, 1] and edges[1, 2]

    def test_hysteresis_bad_thresholds(self):
        with pytest.raises(InvalidThresholdError):
            hysteresis_threshold(np.zeros((2, 2)), 2.0, 1.0)
