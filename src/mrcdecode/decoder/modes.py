"""Mode registry.

The header only ever stores a small integer mode code. This module maps each supported code to a
:class:`PixelFormat` describing the on-disk element layout. Vendor provenance is carried as an annotation
on the format, not as a separate code.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import List, Mapping

import numpy as np

from mrcdecode.errors import MrcUnsupportedError, UnsupportedErrorKind
from mrcdecode.models import Convention


class ElementType(Enum):
    """Element types a decoded buffer can hold. Values are numpy type codes."""

    INT8 = "i1"
    INT16 = "i2"
    INT32 = "i4"
    UINT8 = "u1"
    UINT16 = "u2"
    FLOAT16 = "f2"
    FLOAT32 = "f4"
    FLOAT64 = "f8"

    @property
    def dtype(self) -> np.dtype:
        """Native byte order numpy dtype."""
        return np.dtype(self.value)

    @property
    def width(self) -> int:
        """Width of one element in bytes."""
        return self.dtype.itemsize


@dataclass(frozen=True)
class PixelFormat:
    """Layout of one pixel on disk.

    Attributes:
        mode: The mode code from the header.
        element_type: Type of each component.
        multiplicity: Components per pixel, 1 for scalars, 2 for complex numbers and 3 for RGB.
        convention: Convention that defined the mode.
        description: Human readable description.
    """

    mode: int
    element_type: ElementType
    multiplicity: int = 1
    convention: Convention = Convention.MRC2014
    description: str = ""

    @property
    def element_width(self) -> int:
        return self.element_type.width

    @property
    def pixel_width(self) -> int:
        """Bytes per pixel, all components included."""
        return self.element_width * self.multiplicity

    @property
    def dtype(self) -> np.dtype:
        return self.element_type.dtype

    @property
    def is_complex(self) -> bool:
        return self.multiplicity == 2

    def buffer_shape(self, *dims: int) -> tuple:
        """Shape of a decoded buffer for the given grid dimensions (slowest first)."""
        if self.multiplicity == 1:
            return tuple(dims)
        return (*dims, self.multiplicity)


_FORMATS = (
    PixelFormat(0, ElementType.INT8, description="8-bit signed integer"),
    PixelFormat(1, ElementType.INT16, description="16-bit signed integer"),
    PixelFormat(2, ElementType.FLOAT32, description="32-bit float"),
    PixelFormat(3, ElementType.INT16, 2, description="complex, pair of 16-bit signed integers"),
    PixelFormat(4, ElementType.FLOAT32, 2, description="complex, pair of 32-bit floats"),
    PixelFormat(6, ElementType.UINT16, convention=Convention.UCSF_TOMO, description="16-bit unsigned integer"),
    PixelFormat(12, ElementType.FLOAT16, convention=Convention.IMOD, description="16-bit float"),
    PixelFormat(16, ElementType.UINT8, 3, convention=Convention.IMOD, description="RGB, three 8-bit unsigned integers"),
)


class ModeRegistry:
    """Lookup from mode code to :class:`PixelFormat`.

    The table is fixed at import time and never mutated, so lookups are pure.
    """

    _formats: Mapping[int, PixelFormat] = MappingProxyType({fmt.mode: fmt for fmt in _FORMATS})

    @classmethod
    def resolve(cls, mode: int) -> PixelFormat:
        """Resolve a mode code.

        Args:
            mode: The mode code as stored in the header.

        Returns:
            PixelFormat: The element layout for the mode.

        Raises:
            MrcUnsupportedError: If the code is not supported.
        """
        try:
            return cls._formats[mode]
        except KeyError:
            raise MrcUnsupportedError(
                f"Unsupported mode {mode}. Supported modes are {cls.list_modes()}.",
                UnsupportedErrorKind.UNSUPPORTED_MODE,
                mode,
            ) from None

    @classmethod
    def is_supported(cls, mode: int) -> bool:
        return mode in cls._formats

    @classmethod
    def list_modes(cls) -> List[int]:
        """List all supported mode codes."""
        return sorted(cls._formats)
