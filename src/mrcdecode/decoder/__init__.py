"""Section by section decoding of MRC pixel data.

Usage:
    from mrcdecode.decoder import Decoder

    with open("/path/to/volume.mrc", "rb") as f:
        decoder = Decoder(f)
        nx, ny, nz = decoder.dimensions

        # Sequential decoding, one section (Z-slice) at a time
        for section in decoder.iter_sections():
            ...

        # Random access
        middle = decoder.decode_section(nz // 2)
"""

from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Iterator, Optional, Tuple

import numpy as np

from mrcdecode.decoder.header import read_header
from mrcdecode.decoder.limits import allocate, check_allocation, required_bytes
from mrcdecode.decoder.modes import ModeRegistry, PixelFormat
from mrcdecode.errors import MrcError, MrcIOError
from mrcdecode.models import Header, HeaderLayout, Limits
from mrcdecode.stream import SmartReader
from mrcdecode.util.log import get_logger

logger = get_logger(__name__)


class DecoderState(Enum):
    """State of the sequential section decoding."""

    NOT_STARTED = "not_started"
    DECODING = "decoding"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SectionCursor:
    """Position of the sequential decoding.

    Attributes:
        index: Index of the next section to decode.
        total: Number of sections in the file.
        offset: Absolute byte offset of the next section.
    """

    index: int
    total: int
    offset: int

    @property
    def exhausted(self) -> bool:
        return self.index >= self.total

    def advance(self, section_bytes: int) -> None:
        self.index += 1
        self.offset += section_bytes


class Decoder:
    """Decoder for the pixel data of an MRC file.

    The header is parsed on construction; a decoder only exists for files with a valid header and a supported mode.
    Pixel data is decoded either sequentially with :meth:`decode_next_section`, at random with
    :meth:`decode_section`, or all at once with :meth:`decode_volume`. Whichever way is used, the size of the whole
    pixel block implied by the header is checked against `limits.decoding_buffer_size` before anything is allocated.

    An I/O failure while reading pixel data is permanent: the decoder moves to
    :attr:`DecoderState.FAILED` and raises the same exception on every later call without reading again.

    The decoder shares the cursor of `source` between sequential and random access calls and is not safe for
    concurrent use.
    """

    def __init__(
        self,
        source: BinaryIO,
        limits: Optional[Limits] = None,
        close_source: bool = False,
        layout: HeaderLayout = HeaderLayout.COMPACT,
    ):
        """
        Construct a new Decoder reading from `source`.

        Args:
            source: Seekable binary file object containing an MRC file at offset 0.
            limits: Decoding limits. Defaults to :class:`~mrcdecode.models.Limits`.
            close_source: Close `source` when the decoder is closed.
            layout: Placement of the labels and the extended header, see :class:`~mrcdecode.models.HeaderLayout`.

        Raises:
            MrcFormatError: If the header is malformed.
            MrcUnsupportedError: If the header declares an unsupported mode.
            MrcIOError: If the source fails or ends inside the header.
            LimitsExceededError: If the extended header exceeds `limits.metadata_value_size`.
        """
        self._limits = limits or Limits()
        self._source = source
        self._close_source = close_source

        header = read_header(source, self._limits, layout)
        self._pixel_format = ModeRegistry.resolve(header.mode)
        self._header = header
        self._reader = SmartReader(source, header.byte_order)

        self._state = DecoderState.NOT_STARTED
        self._cursor: Optional[SectionCursor] = None
        self._error: Optional[MrcError] = None

    def __repr__(self) -> str:
        nx, ny, nz = self.dimensions
        return f"Decoder({nx}x{ny}x{nz}, mode={self._header.mode}, state={self._state.name})"

    def __enter__(self) -> "Decoder":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[np.ndarray]:
        return self.iter_sections()

    def close(self) -> None:
        """Close the source if the decoder owns it."""
        if self._close_source:
            self._source.close()

    def with_limits(self, limits: Limits) -> "Decoder":
        """Replace the decoding limits. The extended header has already been read under the previous limits.

        Returns:
            Decoder: This decoder, to allow chaining.
        """
        self._limits = limits
        return self

    @property
    def header(self) -> Header:
        return self._header

    @property
    def pixel_format(self) -> PixelFormat:
        return self._pixel_format

    @property
    def limits(self) -> Limits:
        return self._limits

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def error(self) -> Optional[MrcError]:
        """The failure recorded when the decoder entered :attr:`DecoderState.FAILED`."""
        return self._error

    @property
    def dimensions(self) -> Tuple[int, int, int]:
        """Grid size as (nx, ny, nz)."""
        return self._header.dimensions

    @property
    def data_offset(self) -> int:
        """Absolute byte offset of the first pixel."""
        return self._header.data_offset

    @property
    def section_shape(self) -> Tuple[int, ...]:
        """Shape of a decoded section: (ny, nx) or (ny, nx, multiplicity)."""
        return self._pixel_format.buffer_shape(self._header.ny, self._header.nx)

    @property
    def volume_shape(self) -> Tuple[int, ...]:
        """Shape of the decoded volume: (nz, ny, nx) or (nz, ny, nx, multiplicity)."""
        return self._pixel_format.buffer_shape(self._header.nz, self._header.ny, self._header.nx)

    @property
    def section_byte_length(self) -> int:
        return required_bytes(self._header.nx, self._header.ny, self._pixel_format.pixel_width)

    @property
    def volume_byte_length(self) -> int:
        """Size of the whole pixel block in bytes, as implied by the header."""
        return required_bytes(self._header.nx, self._header.ny, self._header.nz, self._pixel_format.pixel_width)

    @property
    def next_section_index(self) -> Optional[int]:
        """Index of the next section :meth:`decode_next_section` will decode, None before decoding started."""
        return self._cursor.index if self._cursor is not None else None

    def decode_next_section(self) -> Optional[np.ndarray]:
        """Decode the next section in ascending order.

        A file without sections (`nz == 0`) yields a single empty buffer of shape (0, ny, nx) first.

        Returns:
            np.ndarray: The decoded section, or None once all sections have been decoded.

        Raises:
            LimitsExceededError: If the pixel block is larger than `limits.decoding_buffer_size`. The decoder stays
                usable.
            MrcIOError: If reading fails. The decoder is failed permanently.
        """
        self._raise_if_failed()
        if self._state is DecoderState.DONE:
            return None
        self._check_volume_limit()

        if self._state is DecoderState.NOT_STARTED:
            self._cursor = SectionCursor(index=0, total=self._header.nz, offset=self.data_offset)
            self._state = DecoderState.DECODING
            logger.debug(f"Started sequential decoding of {self._cursor.total} sections")

            if self._cursor.exhausted:
                self._state = DecoderState.DONE
                return self._allocate(self.volume_shape, "volume buffer")

        buffer = self._allocate(self.section_shape, "section buffer")
        self._read_at(self._cursor.offset, buffer)
        self._cursor.advance(self.section_byte_length)

        if self._cursor.exhausted:
            self._state = DecoderState.DONE
            logger.debug("Sequential decoding reached the end of the volume")
        return buffer

    def decode_section(self, index: int) -> np.ndarray:
        """Decode the section at `index` without touching the sequential cursor.

        Args:
            index: Section index in [0, nz).

        Returns:
            np.ndarray: The decoded section.

        Raises:
            IndexError: If `index` is out of range.
            LimitsExceededError: If the pixel block is larger than `limits.decoding_buffer_size`.
            MrcIOError: If reading fails. The decoder is failed permanently.
        """
        self._raise_if_failed()

        nz = self._header.nz
        if not 0 <= index < nz:
            raise IndexError(f"Section index {index} out of range for {nz} sections.")
        self._check_volume_limit()

        buffer = self._allocate(self.section_shape, "section buffer")
        self._read_at(self.data_offset + index * self.section_byte_length, buffer)
        return buffer

    def decode_volume(self) -> np.ndarray:
        """Decode all sections into a single buffer.

        The data is read in pieces of at most `limits.intermediate_buffer_size` bytes.

        Returns:
            np.ndarray: The decoded volume.

        Raises:
            LimitsExceededError: If the volume is larger than `limits.decoding_buffer_size`.
            MrcIOError: If reading fails. The decoder is failed permanently.
        """
        self._raise_if_failed()
        self._check_volume_limit()

        buffer = self._allocate(self.volume_shape, "volume buffer")
        self._read_at(self.data_offset, buffer)
        return buffer

    def iter_sections(self) -> Iterator[np.ndarray]:
        """Yield the remaining sections in ascending order."""
        while True:
            section = self.decode_next_section()
            if section is None:
                return
            yield section

    def reset(self) -> None:
        """Restart sequential decoding at the first section.

        Raises:
            MrcError: The recorded failure, if the decoder has failed.
        """
        self._raise_if_failed()
        self._cursor = None
        self._state = DecoderState.NOT_STARTED

    def _check_volume_limit(self) -> None:
        check_allocation(self.volume_byte_length, self._limits.decoding_buffer_size, "pixel data")

    def _allocate(self, shape: Tuple[int, ...], what: str) -> np.ndarray:
        return allocate(shape, self._pixel_format.dtype, self._limits.decoding_buffer_size, what)

    def _read_at(self, offset: int, buffer: np.ndarray) -> None:
        flat = buffer.reshape(-1)
        step = max(1, self._limits.intermediate_buffer_size // flat.itemsize)
        try:
            self._reader.seek(offset)
            for start in range(0, flat.size, step):
                self._reader.read_into(flat[start : start + step])
        except MrcIOError as exc:
            self._fail(exc)
            raise

    def _fail(self, error: MrcError) -> None:
        logger.debug(f"Decoder failed: {error}")
        self._error = error
        self._state = DecoderState.FAILED

    def _raise_if_failed(self) -> None:
        if self._state is DecoderState.FAILED:
            raise self._error.with_traceback(None)
