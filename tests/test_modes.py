import numpy as np
import pytest
from mrcdecode.decoder.modes import ElementType, ModeRegistry, PixelFormat
from mrcdecode.errors import MrcFormatError, MrcUnsupportedError, UnsupportedErrorKind
from mrcdecode.models import Convention


class TestModeRegistry:
    """Test cases for resolving mode codes."""

    @pytest.mark.parametrize(
        "mode,element_type,multiplicity,pixel_width,convention",
        [
            (0, ElementType.INT8, 1, 1, Convention.MRC2014),
            (1, ElementType.INT16, 1, 2, Convention.MRC2014),
            (2, ElementType.FLOAT32, 1, 4, Convention.MRC2014),
            (3, ElementType.INT16, 2, 4, Convention.MRC2014),
            (4, ElementType.FLOAT32, 2, 8, Convention.MRC2014),
            (6, ElementType.UINT16, 1, 2, Convention.UCSF_TOMO),
            (12, ElementType.FLOAT16, 1, 2, Convention.IMOD),
            (16, ElementType.UINT8, 3, 3, Convention.IMOD),
        ],
    )
    def test_resolve(self, mode, element_type, multiplicity, pixel_width, convention):
        fmt = ModeRegistry.resolve(mode)

        assert fmt.mode == mode
        assert fmt.element_type is element_type
        assert fmt.multiplicity == multiplicity
        assert fmt.pixel_width == pixel_width
        assert fmt.convention is convention
        assert fmt.description

    @pytest.mark.parametrize("mode", [-1, 5, 7, 99, 101, 2**31 - 1])
    def test_unsupported(self, mode):
        with pytest.raises(MrcUnsupportedError) as excinfo:
            ModeRegistry.resolve(mode)

        assert not isinstance(excinfo.value, MrcFormatError)
        assert excinfo.value.kind is UnsupportedErrorKind.UNSUPPORTED_MODE
        assert excinfo.value.value == mode
        assert excinfo.value.__cause__ is None

    def test_list_modes(self):
        assert ModeRegistry.list_modes() == [0, 1, 2, 3, 4, 6, 12, 16]

    def test_is_supported(self):
        assert ModeRegistry.is_supported(2)
        assert not ModeRegistry.is_supported(101)

    def test_resolve_is_stable(self):
        assert ModeRegistry.resolve(4) is ModeRegistry.resolve(4)

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            ModeRegistry._formats[99] = PixelFormat(99, ElementType.INT32)


class TestPixelFormat:
    """Test cases for the pixel layout helpers."""

    def test_scalar_buffer_shape(self):
        assert ModeRegistry.resolve(2).buffer_shape(3, 4, 5) == (3, 4, 5)

    def test_complex_buffer_shape(self):
        fmt = ModeRegistry.resolve(3)

        assert fmt.is_complex
        assert fmt.buffer_shape(4, 5) == (4, 5, 2)

    def test_rgb_buffer_shape(self):
        fmt = ModeRegistry.resolve(16)

        assert not fmt.is_complex
        assert fmt.buffer_shape(2, 4, 5) == (2, 4, 5, 3)

    def test_dtype_is_native(self):
        for mode in ModeRegistry.list_modes():
            assert ModeRegistry.resolve(mode).dtype.isnative

    @pytest.mark.parametrize(
        "element_type,dtype",
        [
            (ElementType.INT8, np.int8),
            (ElementType.INT16, np.int16),
            (ElementType.INT32, np.int32),
            (ElementType.UINT8, np.uint8),
            (ElementType.UINT16, np.uint16),
            (ElementType.FLOAT16, np.float16),
            (ElementType.FLOAT32, np.float32),
            (ElementType.FLOAT64, np.float64),
        ],
    )
    def test_element_types(self, element_type, dtype):
        assert element_type.dtype == np.dtype(dtype)
        assert element_type.width == np.dtype(dtype).itemsize

    def test_frozen(self):
        fmt = ModeRegistry.resolve(0)

        with pytest.raises(AttributeError):
            fmt.mode = 1
