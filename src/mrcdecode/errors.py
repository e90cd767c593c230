"""Exceptions raised while decoding MRC files.

Every failure raised by mrcdecode derives from :class:`MrcError` and falls into exactly one of four kinds:

- :class:`MrcFormatError`: the bytes violate the MRC layout (bad magic, bad machine stamp, negative sizes, ...).
- :class:`MrcUnsupportedError`: the file is well-formed but uses a feature that is not implemented (e.g. a mode code).
- :class:`MrcIOError`: the underlying byte source failed or ended early.
- :class:`LimitsExceededError`: a prospective allocation exceeds the configured :class:`~mrcdecode.models.Limits`.
"""

from enum import Enum
from typing import Any, Optional


class FormatErrorKind(Enum):
    """What a malformed header value was expected to be."""

    BYTE_EXPECTED = "byte_expected"
    UNSIGNED_INTEGER_EXPECTED = "unsigned_integer_expected"
    SIGNED_INTEGER_EXPECTED = "signed_integer_expected"
    FORMAT = "format"


class UnsupportedErrorKind(Enum):
    """Which feature the decoder does not handle."""

    UNSUPPORTED_MODE = "unsupported_mode"
    UNSUPPORTED_DATA_TYPE = "unsupported_data_type"


class MrcError(Exception):
    """Base class of all mrcdecode errors."""


class MrcFormatError(MrcError):
    """The file is not formatted properly.

    Attributes:
        kind: What the offending value was expected to be.
        value: The offending value as it was found in the file.
    """

    def __init__(self, message: str, kind: FormatErrorKind = FormatErrorKind.FORMAT, value: Any = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.value = value


class MrcUnsupportedError(MrcError):
    """The file declares a feature the decoder does not support.

    Attributes:
        kind: The kind of feature.
        value: The declared code, e.g. the mode number.
    """

    def __init__(self, message: str, kind: UnsupportedErrorKind, value: Any = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.value = value


class MrcIOError(MrcError):
    """Reading from or seeking in the byte source failed."""


class LimitsExceededError(MrcError):
    """A prospective allocation is larger than the configured ceiling.

    Attributes:
        required: Number of bytes the allocation would need.
        limit: The configured ceiling in bytes.
        what: Short description of the rejected buffer.
    """

    def __init__(self, required: int, limit: int, what: Optional[str] = None) -> None:
        what = what or "buffer"
        super().__init__(f"{what} of {required} bytes exceeds the limit of {limit} bytes.")
        self.required = required
        self.limit = limit
        self.what = what
