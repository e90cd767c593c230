import io
import struct
from typing import Optional, Sequence, Tuple

import numpy as np
import pytest
from mrcdecode.models import HeaderLayout

STAMPS = {
    "<": b"\x44\x44\x00\x00",
    ">": b"\x11\x11\x00\x00",
}


def build_mrc(
    data: Optional[np.ndarray] = None,
    *,
    mode: int = 2,
    byte_order: str = "<",
    dimensions: Optional[Tuple[int, int, int]] = None,
    sampling: Tuple[int, int, int] = (0, 0, 0),
    cell_lengths: Tuple[float, float, float] = (0.0, 0.0, 0.0),
    cell_angles: Tuple[float, float, float] = (90.0, 90.0, 90.0),
    axis_order: Tuple[int, int, int] = (1, 2, 3),
    stats: Tuple[float, float, float] = (0.0, 0.0, 0.0),
    rms: float = 0.0,
    ispg: int = 1,
    nsymbt: Optional[int] = None,
    extended_header: bytes = b"",
    ext_type: bytes = b"\x00\x00\x00\x00",
    nversion: int = 20140,
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0),
    magic: bytes = b"MAP ",
    stamp: Optional[bytes] = None,
    labels: Sequence[bytes] = (),
    nlabl: Optional[int] = None,
    layout: HeaderLayout = HeaderLayout.COMPACT,
) -> bytes:
    """Assemble the bytes of an MRC file.

    `data` is written as (nz, ny, nx[, components]) in the requested byte order. `dimensions` overrides the grid size
    written to the header, e.g. to declare more data than is present. With the compact layout the label records are
    written at the start of the region after the fixed header and count towards `nsymbt`.
    """
    if dimensions is None:
        if data is None:
            dimensions = (0, 0, 0)
        else:
            nz, ny, nx = data.shape[:3]
            dimensions = (nx, ny, nz)
    padded_labels = [label.ljust(80, b" ") for label in labels]
    if layout is HeaderLayout.COMPACT:
        extended_header = b"".join(padded_labels) + extended_header
    if nsymbt is None:
        nsymbt = len(extended_header)
    if nlabl is None:
        nlabl = len(labels)

    header = bytearray(layout.prefix_size)
    struct.pack_into(f"{byte_order}4i", header, 0, *dimensions, mode)
    struct.pack_into(f"{byte_order}3i", header, 28, *sampling)
    struct.pack_into(f"{byte_order}3f", header, 40, *cell_lengths)
    struct.pack_into(f"{byte_order}3f", header, 52, *cell_angles)
    struct.pack_into(f"{byte_order}3i", header, 64, *axis_order)
    struct.pack_into(f"{byte_order}3f", header, 76, *stats)
    struct.pack_into(f"{byte_order}2i", header, 88, ispg, nsymbt)
    header[104:108] = ext_type
    struct.pack_into(f"{byte_order}i", header, 108, nversion)
    struct.pack_into(f"{byte_order}3f", header, 196, *origin)
    header[208:212] = magic
    header[212:216] = STAMPS[byte_order] if stamp is None else stamp
    struct.pack_into(f"{byte_order}f", header, 216, rms)
    struct.pack_into(f"{byte_order}i", header, 220, nlabl)
    if layout is HeaderLayout.MRC2014:
        for i, label in enumerate(padded_labels):
            header[224 + i * 80 : 224 + (i + 1) * 80] = label

    pixels = b""
    if data is not None:
        pixels = data.astype(data.dtype.newbyteorder(byte_order)).tobytes()

    return bytes(header) + extended_header + pixels


class CountingBytesIO(io.BytesIO):
    """BytesIO that counts read calls, to observe whether a decoder touches the stream."""

    def __init__(self, initial_bytes: bytes = b""):
        super().__init__(initial_bytes)
        self.reads = 0

    def read(self, size=-1):
        self.reads += 1
        return super().read(size)

    def readinto(self, buffer):
        self.reads += 1
        return super().readinto(buffer)


class TrickleBytesIO(io.BytesIO):
    """BytesIO that hands out at most three bytes per call, like a slow pipe."""

    def read(self, size=-1):
        return super().read(3 if size is None or size < 0 else min(size, 3))

    def readinto(self, buffer):
        view = memoryview(buffer)
        return super().readinto(view[: min(len(view), 3)])


class ReadSeekSource:
    """Minimal seekable source that only implements read, seek and tell, e.g. a thin socket or archive wrapper."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    def read(self, size=-1):
        end = len(self._data) if size is None or size < 0 else self._pos + size
        chunk = self._data[self._pos : end]
        self._pos += len(chunk)
        return chunk

    def seek(self, offset, whence=0):
        base = {0: 0, 1: self._pos, 2: len(self._data)}[whence]
        self._pos = base + offset
        return self._pos

    def tell(self):
        return self._pos


@pytest.fixture
def make_mrc():
    return build_mrc


@pytest.fixture
def counting_source():
    return CountingBytesIO


@pytest.fixture
def trickle_source():
    return TrickleBytesIO


@pytest.fixture
def read_seek_source():
    return ReadSeekSource


@pytest.fixture
def volume() -> np.ndarray:
    """A small float32 volume with distinct values in every voxel, shape (nz, ny, nx) = (3, 4, 5)."""
    return np.arange(3 * 4 * 5, dtype=np.float32).reshape(3, 4, 5) - 7.5


COMMON_CASES = []


@pytest.fixture
def little_endian():
    return {"byte_order": "<", "stamp": STAMPS["<"], "name": "LITTLE"}


@pytest.fixture
def big_endian():
    return {"byte_order": ">", "stamp": STAMPS[">"], "name": "BIG"}


COMMON_CASES.extend(["little_endian", "big_endian"])


def pytest_configure():
    pytest.common_cases = COMMON_CASES
