"""Byte-order aware reading from seekable binary sources."""

import struct
import sys
from enum import Enum
from typing import BinaryIO, Protocol, runtime_checkable

import numpy as np

from mrcdecode.errors import FormatErrorKind, MrcFormatError, MrcIOError

# Leading bytes of the machine stamp. 0x44 0x41 is written by older CCP4/IMOD builds on little-endian machines.
_LITTLE_ENDIAN_STAMPS = (b"\x44\x44", b"\x44\x41")
_BIG_ENDIAN_STAMPS = (b"\x11\x11",)


class ByteOrder(Enum):
    """Byte order of the multi-byte values in an MRC file. Values are `struct`/numpy prefixes."""

    LITTLE = "<"
    BIG = ">"

    @classmethod
    def from_machine_stamp(cls, stamp: bytes) -> "ByteOrder":
        """Decode the byte order from the machine stamp (header bytes 213-216).

        Args:
            stamp: The raw stamp bytes. Only the first two bytes carry information.

        Returns:
            ByteOrder: The byte order used to write the file.

        Raises:
            MrcFormatError: If the stamp does not match a known pattern.
        """
        key = bytes(stamp[:2])
        if key in _LITTLE_ENDIAN_STAMPS:
            return cls.LITTLE
        if key in _BIG_ENDIAN_STAMPS:
            return cls.BIG
        raise MrcFormatError(
            f"Unrecognized machine stamp {bytes(stamp)!r}, cannot determine byte order.",
            FormatErrorKind.BYTE_EXPECTED,
            bytes(stamp),
        )

    @property
    def is_native(self) -> bool:
        """Whether this is the byte order of the running machine."""
        return (self is ByteOrder.LITTLE) == (sys.byteorder == "little")


@runtime_checkable
class EndianReader(Protocol):
    """Protocol for seekable readers that convert file bytes to host-ordered numbers.

    Implementations must provide:
    - byte_order: The fixed byte order of the underlying data
    - read_exact(): Read an exact number of raw bytes
    - read_into(): Fill a numpy array and correct its byte order in place
    - seek() / tell(): Random access on the underlying source
    """

    @property
    def byte_order(self) -> ByteOrder: ...

    def read_exact(self, size: int) -> bytes: ...

    def read_into(self, buffer: np.ndarray) -> None: ...

    def seek(self, offset: int, whence: int = 0) -> int: ...

    def tell(self) -> int: ...


class SmartReader:
    """Wraps a seekable binary source and reads numbers in a fixed byte order.

    The byte order cannot be changed after construction. Reading a file of unknown order means reading the
    order-independent bytes first and then building a new reader, see :func:`mrcdecode.decoder.header.read_header`.
    """

    def __init__(self, source: BinaryIO, byte_order: ByteOrder):
        self._source = source
        self._byte_order = byte_order

    def __repr__(self) -> str:
        return f"SmartReader(source={self._source!r}, byte_order={self._byte_order})"

    @property
    def byte_order(self) -> ByteOrder:
        return self._byte_order

    @property
    def source(self) -> BinaryIO:
        return self._source

    def seek(self, offset: int, whence: int = 0) -> int:
        try:
            return self._source.seek(offset, whence)
        except (OSError, ValueError) as exc:
            raise MrcIOError(f"Failed to seek to offset {offset}.") from exc

    def tell(self) -> int:
        try:
            return self._source.tell()
        except (OSError, ValueError) as exc:
            raise MrcIOError("Failed to query the stream position.") from exc

    def read_exact(self, size: int) -> bytes:
        """Read exactly `size` bytes.

        Raises:
            MrcIOError: If the source fails or ends before `size` bytes were read.
        """
        chunks = []
        remaining = size
        while remaining > 0:
            try:
                chunk = self._source.read(remaining)
            except (OSError, ValueError) as exc:
                raise MrcIOError(f"Failed to read {size} bytes.") from exc
            if not chunk:
                raise MrcIOError(f"Unexpected end of stream: expected {size} bytes, got {size - remaining}.")
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def _unpack(self, fmt: str):
        layout = struct.Struct(self._byte_order.value + fmt)
        return layout.unpack(self.read_exact(layout.size))[0]

    def read_u16(self) -> int:
        return self._unpack("H")

    def read_i16(self) -> int:
        return self._unpack("h")

    def read_u32(self) -> int:
        return self._unpack("I")

    def read_i32(self) -> int:
        return self._unpack("i")

    def read_u64(self) -> int:
        return self._unpack("Q")

    def read_f32(self) -> float:
        return self._unpack("f")

    def read_f64(self) -> float:
        return self._unpack("d")

    def read_into(self, buffer: np.ndarray) -> None:
        """Fill `buffer` from the stream and convert it to host byte order in place.

        Args:
            buffer: A C-contiguous numpy array in native byte order. Its size determines how much is read.

        Raises:
            MrcIOError: If the source fails or ends before the buffer is full.
        """
        if not buffer.flags.c_contiguous:
            raise ValueError("Target buffer must be C-contiguous.")

        raw = memoryview(buffer.reshape(-1).view(np.uint8))
        total = len(raw)
        filled = 0
        while filled < total:
            try:
                count = self._readinto(raw[filled:])
            except (OSError, ValueError) as exc:
                raise MrcIOError(f"Failed to read {total} bytes.") from exc
            if not count:
                raise MrcIOError(f"Unexpected end of stream: expected {total} bytes, got {filled}.")
            filled += count

        if buffer.dtype.itemsize > 1 and not self._byte_order.is_native:
            buffer.byteswap(inplace=True)

    def _readinto(self, view: memoryview) -> int:
        readinto = getattr(self._source, "readinto", None)
        if readinto is not None:
            return readinto(view) or 0

        # Sources that only implement read()
        chunk = self._source.read(len(view))
        view[: len(chunk)] = chunk
        return len(chunk)

    def _read_typed_into(self, buffer: np.ndarray, dtype) -> None:
        if buffer.dtype != np.dtype(dtype):
            raise TypeError(f"Expected a buffer of {np.dtype(dtype)}, got {buffer.dtype}.")
        self.read_into(buffer)

    def read_i8_into(self, buffer: np.ndarray) -> None:
        self._read_typed_into(buffer, np.int8)

    def read_u8_into(self, buffer: np.ndarray) -> None:
        self._read_typed_into(buffer, np.uint8)

    def read_i16_into(self, buffer: np.ndarray) -> None:
        self._read_typed_into(buffer, np.int16)

    def read_u16_into(self, buffer: np.ndarray) -> None:
        self._read_typed_into(buffer, np.uint16)

    def read_i32_into(self, buffer: np.ndarray) -> None:
        self._read_typed_into(buffer, np.int32)

    def read_u32_into(self, buffer: np.ndarray) -> None:
        self._read_typed_into(buffer, np.uint32)

    def read_u64_into(self, buffer: np.ndarray) -> None:
        self._read_typed_into(buffer, np.uint64)

    def read_f16_into(self, buffer: np.ndarray) -> None:
        self._read_typed_into(buffer, np.float16)

    def read_f32_into(self, buffer: np.ndarray) -> None:
        self._read_typed_into(buffer, np.float32)

    def read_f64_into(self, buffer: np.ndarray) -> None:
        self._read_typed_into(buffer, np.float64)
