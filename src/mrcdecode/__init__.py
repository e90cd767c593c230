__version__ = "0.1.0"

from mrcdecode.decoder import Decoder, DecoderState
from mrcdecode.decoder.modes import ElementType, ModeRegistry, PixelFormat
from mrcdecode.errors import LimitsExceededError, MrcError, MrcFormatError, MrcIOError, MrcUnsupportedError
from mrcdecode.models import Header, HeaderLayout, Limits
from mrcdecode.ops.open import open_decoder, read_header, read_volume
from mrcdecode.stream import ByteOrder

__all__ = [
    "open_decoder",
    "read_header",
    "read_volume",
    "Decoder",
    "DecoderState",
    "Header",
    "HeaderLayout",
    "Limits",
    "ByteOrder",
    "ElementType",
    "ModeRegistry",
    "PixelFormat",
    "MrcError",
    "MrcFormatError",
    "MrcUnsupportedError",
    "MrcIOError",
    "LimitsExceededError",
    "__version__",
]
