"""Parsing of the fixed MRC header, the labels and the extended header."""

import io
from dataclasses import dataclass, fields
from typing import BinaryIO, Optional, Tuple

from mrcdecode.decoder.limits import check_allocation
from mrcdecode.errors import FormatErrorKind, MrcFormatError
from mrcdecode.models import (
    HEADER_SIZE,
    LABEL_BLOCK_SIZE,
    LABEL_SIZE,
    MAP_ID,
    MAX_LABELS,
    Convention,
    ExtendedHeaderInfo,
    Header,
    HeaderLayout,
    Limits,
    Origin,
)
from mrcdecode.stream import ByteOrder, SmartReader
from mrcdecode.util.log import get_logger

logger = get_logger(__name__)

MAP_OFFSET = 208
MACHINE_STAMP_OFFSET = 212
EXTRA_SIZE = 100
# Position of exttyp and nversion inside the extra region (absolute offsets 104 and 108).
EXT_TYPE_OFFSET = 8

EXTENDED_HEADER_CONVENTIONS = {
    "CCP4": Convention.CCP4,
    "MRCO": Convention.MRC2014,
    "SERI": Convention.IMOD,
    "AGAR": Convention.IVE,
    "FEI1": Convention.EPU,
    "FEI2": Convention.EPU,
    "HDF5": Convention.HDF5,
}

# Slots that may stay empty in a finished header.
_OPTIONAL_SLOTS = ("mx", "my", "mz", "ext_header")


@dataclass
class HeaderBuilder:
    """Mutable staging area for a header while it is being parsed.

    Every slot starts out empty. :meth:`build` checks that all required slots were filled, applies defaults and
    returns the immutable :class:`~mrcdecode.models.Header`.
    """

    nx: Optional[int] = None
    ny: Optional[int] = None
    nz: Optional[int] = None
    mode: Optional[int] = None
    nxstart: Optional[int] = None
    nystart: Optional[int] = None
    nzstart: Optional[int] = None
    mx: Optional[int] = None
    my: Optional[int] = None
    mz: Optional[int] = None
    xlen: Optional[float] = None
    ylen: Optional[float] = None
    zlen: Optional[float] = None
    alpha: Optional[float] = None
    beta: Optional[float] = None
    gamma: Optional[float] = None
    mapc: Optional[int] = None
    mapr: Optional[int] = None
    maps: Optional[int] = None
    amin: Optional[float] = None
    amax: Optional[float] = None
    amean: Optional[float] = None
    ispg: Optional[int] = None
    nsymbt: Optional[int] = None
    extra: Optional[bytes] = None
    ext_header: Optional[ExtendedHeaderInfo] = None
    origin: Optional[Origin] = None
    map: Optional[bytes] = None
    machine_stamp: Optional[bytes] = None
    byte_order: Optional[ByteOrder] = None
    rms: Optional[float] = None
    nlabl: Optional[int] = None
    labels: Optional[Tuple[str, ...]] = None
    extended_header: Optional[bytes] = None
    layout: HeaderLayout = HeaderLayout.COMPACT

    def build(self) -> Header:
        """Validate the staged values and freeze them into a :class:`~mrcdecode.models.Header`.

        Raises:
            MrcFormatError: If a required value is missing or out of range.
        """
        missing = [f.name for f in fields(self) if getattr(self, f.name) is None and f.name not in _OPTIONAL_SLOTS]
        if missing:
            raise MrcFormatError(f"Header is missing required fields: {', '.join(missing)}.")

        for name in ("nx", "ny", "nz", "mx", "my", "mz", "nsymbt"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise MrcFormatError(
                    f"Header field {name} must not be negative, found {value}.",
                    FormatErrorKind.UNSIGNED_INTEGER_EXPECTED,
                    value,
                )

        if not 0 <= self.nlabl <= MAX_LABELS:
            raise MrcFormatError(f"Number of labels must be in [0, {MAX_LABELS}], found {self.nlabl}.", value=self.nlabl)

        if self.map != MAP_ID:
            raise MrcFormatError(
                f"Invalid file type magic {self.map!r}, expected {MAP_ID!r}.",
                FormatErrorKind.BYTE_EXPECTED,
                self.map,
            )

        values = {f.name: getattr(self, f.name) for f in fields(self)}
        # An unset unit cell sampling falls back to the grid size.
        values["mx"] = self.mx or self.nx
        values["my"] = self.my or self.ny
        values["mz"] = self.mz or self.nz
        return Header(**values)


def _decode_labels(block: bytes, nlabl: int) -> Tuple[str, ...]:
    count = max(0, min(nlabl, MAX_LABELS, len(block) // LABEL_SIZE))
    records = (block[i * LABEL_SIZE : (i + 1) * LABEL_SIZE] for i in range(count))
    return tuple(record.rstrip(b" \x00").decode("ascii", errors="replace") for record in records)


def _decode_ext_header(ext_type: bytes, nversion: int) -> Optional[ExtendedHeaderInfo]:
    try:
        tag = ext_type.decode("ascii")
    except UnicodeDecodeError:
        return None

    convention = EXTENDED_HEADER_CONVENTIONS.get(tag)
    if convention is None:
        return None
    return ExtendedHeaderInfo(ext_type=tag, nversion=nversion, convention=convention)


def parse_fields(raw: bytes) -> HeaderBuilder:
    """Parse the 224 byte field block.

    The magic and the machine stamp are raw byte sequences that can be inspected before the byte order is known.
    Once the order is decoded from the stamp, the whole block is interpreted again with a reader in that order.

    Args:
        raw: The first 224 bytes of the file.

    Returns:
        HeaderBuilder: Staged header without labels and extended header.

    Raises:
        MrcFormatError: If the magic or the machine stamp is invalid.
    """
    magic = bytes(raw[MAP_OFFSET : MAP_OFFSET + 4])
    if magic != MAP_ID:
        raise MrcFormatError(
            f"Invalid file type magic {magic!r}, expected {MAP_ID!r}.",
            FormatErrorKind.BYTE_EXPECTED,
            magic,
        )

    byte_order = ByteOrder.from_machine_stamp(raw[MACHINE_STAMP_OFFSET : MACHINE_STAMP_OFFSET + 4])
    reader = SmartReader(io.BytesIO(raw), byte_order)

    builder = HeaderBuilder(byte_order=byte_order)
    builder.nx, builder.ny, builder.nz = reader.read_i32(), reader.read_i32(), reader.read_i32()
    builder.mode = reader.read_i32()
    builder.nxstart, builder.nystart, builder.nzstart = reader.read_i32(), reader.read_i32(), reader.read_i32()
    builder.mx, builder.my, builder.mz = reader.read_i32(), reader.read_i32(), reader.read_i32()
    builder.xlen, builder.ylen, builder.zlen = reader.read_f32(), reader.read_f32(), reader.read_f32()
    builder.alpha, builder.beta, builder.gamma = reader.read_f32(), reader.read_f32(), reader.read_f32()
    builder.mapc, builder.mapr, builder.maps = reader.read_i32(), reader.read_i32(), reader.read_i32()
    builder.amin, builder.amax, builder.amean = reader.read_f32(), reader.read_f32(), reader.read_f32()
    builder.ispg = reader.read_i32()
    builder.nsymbt = reader.read_i32()
    builder.extra = reader.read_exact(EXTRA_SIZE)
    builder.origin = Origin(x=reader.read_f32(), y=reader.read_f32(), z=reader.read_f32())
    builder.map = reader.read_exact(4)
    builder.machine_stamp = reader.read_exact(4)
    builder.rms = reader.read_f32()
    builder.nlabl = reader.read_i32()

    extra = SmartReader(io.BytesIO(builder.extra), byte_order)
    extra.seek(EXT_TYPE_OFFSET)
    ext_type = extra.read_exact(4)
    builder.ext_header = _decode_ext_header(ext_type, extra.read_i32())

    return builder


def read_header(
    source: BinaryIO,
    limits: Optional[Limits] = None,
    layout: HeaderLayout = HeaderLayout.COMPACT,
) -> Header:
    """Read and validate the header at the start of `source`.

    With the default compact layout only the 224 byte fixed header and the `nsymbt` bytes after it are read, and
    label records are taken from the start of that region. Files from MRC2014 tools carry an 800 byte label block
    in front of the extended header and need `layout=HeaderLayout.MRC2014`.

    Args:
        source: A seekable binary file object positioned anywhere; the header is always read from offset 0.
        limits: Limits to apply to the extended header. Defaults to :class:`~mrcdecode.models.Limits`.
        layout: Placement of the labels and the extended header.

    Returns:
        Header: The parsed header. The source is left positioned at the first pixel.

    Raises:
        MrcFormatError: If the header is malformed.
        MrcIOError: If the source fails or is shorter than the header.
        LimitsExceededError: If the extended header is larger than `limits.metadata_value_size`.
    """
    limits = limits or Limits()

    # The byte order is irrelevant for raw byte reads.
    reader = SmartReader(source, ByteOrder.LITTLE)
    reader.seek(0)
    builder = parse_fields(reader.read_exact(HEADER_SIZE))
    builder.layout = layout

    label_block = b""
    if layout is HeaderLayout.MRC2014:
        label_block = reader.read_exact(LABEL_BLOCK_SIZE)

    if builder.nsymbt < 0:
        raise MrcFormatError(
            f"Extended header length must not be negative, found {builder.nsymbt}.",
            FormatErrorKind.UNSIGNED_INTEGER_EXPECTED,
            builder.nsymbt,
        )
    check_allocation(builder.nsymbt, limits.metadata_value_size, "extended header")
    builder.extended_header = reader.read_exact(builder.nsymbt)

    if layout is HeaderLayout.COMPACT:
        label_block = builder.extended_header
    builder.labels = _decode_labels(label_block, builder.nlabl)

    header = builder.build()
    logger.debug(
        f"Parsed MRC header: {header.nx}x{header.ny}x{header.nz}, mode {header.mode}, "
        f"{header.byte_order.name.lower()} endian, {header.nsymbt} bytes extended header",
    )
    return header
