# ==================================================
# ==============  TESTS: image_buffer  =============
# ==================================================
import numpy as np
import pytest

from ndvision.core.errors import (
    DimensionMismatchError,
    OutOfBoundsError,
    ReadOnlyBufferError,
    UnsupportedChannelCountError,
)
from ndvision.core.image_buffer import ColourModel, ImageBuffer


class TestConstruction:
    """Buffer allocation and wrapping"""

    def test_zeros_gray(self):
        buf = ImageBuffer.zeros(3, 4)
        assert buf.shape == (3, 4, 1)
        assert buf.dtype == np.uint8
        assert buf.model is ColourModel.GRAY
        assert buf.owns_data

    def test_full_rgb_saturates_fill(self):
        buf = ImageBuffer.full(2, 2, 300, model=ColourModel.RGB)
        assert buf.channels == 3
        assert np.all(buf.data == 255)

    def test_other_model_needs_channel_count(self):
        with pytest.raises(UnsupportedChannelCountError):
            ImageBuffer.zeros(2, 2, model=ColourModel.OTHER)
        assert ImageBuffer.zeros(2, 2, model=ColourModel.OTHER, channels=2).channels == 2

    def test_model_channel_mismatch(self):
        with pytest.raises(UnsupportedChannelCountError):
            ImageBuffer(np.zeros((2, 2, 2), dtype=np.uint8), ColourModel.RGB)

    def test_from_array_2d_gets_channel_axis(self):
        buf = ImageBuffer.from_array(np.ones((2, 3), dtype=np.float32))
        assert buf.shape == (2, 3, 1)
        assert buf.model is ColourModel.GRAY

    def test_from_array_infers_rgba(self):
        buf = ImageBuffer.from_array(np.zeros((2, 2, 4), dtype=np.uint8))
        assert buf.model is ColourModel.RGBA

    def test_from_array_borrowed_storage(self):
        storage = np.zeros((2, 2), dtype=np.uint8)
        buf = ImageBuffer.from_array(storage, copy=False)
        assert not buf.owns_data
        buf.set(1, 1, 9)
        assert storage[1, 1] == 9

    def test_from_array_copy_is_independent(self):
        storage = np.zeros((2, 2), dtype=np.uint8)
        buf = ImageBuffer.from_array(storage)
        buf.set(0, 0, 5)
        assert storage[0, 0] == 0

    def test_from_shape_data_row_major_channel_minor(self):
        buf = ImageBuffer.from_shape_data(1, 2, [1, 2, 3, 4, 5, 6], ColourModel.RGB, dtype=np.uint8)
        assert buf.pixel(0, 1).tolist() == [4, 5, 6]

    def test_from_shape_data_wrong_length(self):
        with pytest.raises(DimensionMismatchError):
            ImageBuffer.from_shape_data(2, 2, [1, 2, 3])

    def test_rejects_non_3d_data(self):
        with pytest.raises(DimensionMismatchError):
            ImageBuffer(np.zeros((2, 2)))


class TestElementAccess:
    """Bounds-checked get / set"""

    def test_get_row_major(self, gray_ramp):
        assert gray_ramp.get(1, 2) == 7
        assert gray_ramp.get(3, 4) == 19

    def test_negative_index_is_out_of_bounds(self, gray_ramp):
        with pytest.raises(OutOfBoundsError):
            gray_ramp.get(-1, 0)

    @pytest.mark.parametrize("row, col, channel", [(4, 0, 0), (0, 5, 0), (0, 0, 1)])
    def test_out_of_range(self, gray_ramp, row, col, channel):
        with pytest.raises(IndexError):
            gray_ramp.get(row, col, channel)

    def test_set_saturates(self, gray_ramp):
        gray_ramp.set(0, 0, 300)
        gray_ramp.set(0, 1, -4)
        assert gray_ramp.get(0, 0) == 255
        assert gray_ramp.get(0, 1) == 0

    def test_pixel_is_a_copy(self, rgb_image):
        px = rgb_image.pixel(0, 0)
        px[:] = 99
        assert rgb_image.get(0, 0, 0) == 0


class TestViews:
    """Borrowed sub-rectangles and channel extraction"""

    def test_read_only_view_refuses_writes(self, gray_ramp):
        view = gray_ramp.view(slice(1, 3), slice(1, 4))
        assert view.shape == (2, 3, 1)
        assert view.get(0, 0) == 6
        assert view.base is gray_ramp
        with pytest.raises(ReadOnlyBufferError):
            view.set(0, 0, 1)

    def test_writable_view_writes_through(self, gray_ramp):
        view = gray_ramp.view(slice(2, 4), None, writable=True)
        view.set(0, 0, 200)
        assert gray_ramp.get(2, 0) == 200

    def test_writable_view_of_read_only_view(self, gray_ramp):
        view = gray_ramp.view()
        with pytest.raises(ReadOnlyBufferError):
            view.view(writable=True)

    def test_view_out_of_bounds(self, gray_ramp):
        with pytest.raises(OutOfBoundsError):
            gray_ramp.view(slice(0, 5))

    def test_channel_copy(self, rgb_image):
        green = rgb_image.channel(1)
        assert green.model is ColourModel.GRAY
        assert green.get(0, 0) == 1
        assert green.owns_data

    def test_channel_view(self, rgb_image):
        blue = rgb_image.channel(2, copy=False)
        assert not blue.writable
        assert blue.get(2, 3) == rgb_image.get(2, 3, 2)

    def test_channel_out_of_range(self, rgb_image):
        with pytest.raises(OutOfBoundsError):
            rgb_image.channel(3)


class TestTransforms:
    """map / astype / into_type"""

    def test_map_changes_type(self, gray_ramp):
        out = gray_ramp.map(lambda v: int(v) * 20, dtype=np.uint8)
        assert out.dtype == np.uint8
        assert out.get(0, 1) == 20
        assert out.get(3, 4) == 255

    def test_map_stops_at_first_error(self, gray_ramp):
        seen = []

        def fail_on_three(v):
            seen.append(int(v))
            if v == 3:
                raise ValueError("three")
            return v

        with pytest.raises(ValueError, match="three"):
            gray_ramp.map(fail_on_three)
        assert seen == [0, 1, 2, 3]

    def test_astype_saturates_without_rescale(self):
        buf = ImageBuffer.from_array(np.array([[-3.0, 1.6, 400.0]]))
        assert buf.astype(np.uint8).data[0, :, 0].tolist() == [0, 2, 255]

    def test_into_type_u8_to_u16(self):
        buf = ImageBuffer.from_array(np.array([[0, 255]], dtype=np.uint8))
        out = buf.into_type(np.uint16)
        assert out.data[0, :, 0].tolist() == [0, 65535]

    def test_into_type_u8_to_float(self):
        buf = ImageBuffer.from_array(np.array([[0, 51, 255]], dtype=np.uint8))
        out = buf.into_type(np.float64)
        np.testing.assert_allclose(out.data[0, :, 0], [0.0, 0.2, 1.0])

    def test_equality_and_copy(self, gray_ramp):
        clone = gray_ramp.copy()
        assert clone == gray_ramp
        clone.set(0, 0, 1)
        assert clone != gray_ramp
