import json
import sys
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mrcdecode.stream import ByteOrder

# Size of the fixed header at the start of every file.
HEADER_SIZE = 224
LABEL_SIZE = 80
MAX_LABELS = 10
LABEL_BLOCK_SIZE = LABEL_SIZE * MAX_LABELS
MAP_ID = b"MAP "


class Convention(Enum):
    """Software convention a mode code or an extended header originates from."""

    MRC2014 = "MRC2014"
    CCP4 = "CCP4"
    UCSF_TOMO = "UCSF tomo"
    IMOD = "IMOD"
    EPU = "EPU"
    IVE = "IVE"
    HDF5 = "HDF5"


class HeaderLayout(Enum):
    """Placement of the label records and the extended header after the fixed header.

    COMPACT: the extended header follows the 224 byte fixed header directly and the pixel data starts at
        `224 + nsymbt`. Label records are taken from the leading bytes of that region, as far as it holds them.
    MRC2014: an 800 byte label block sits between the fixed header and the extended header, as written by
        mrcfile, IMOD and most other MRC2014 tools. The pixel data starts at `1024 + nsymbt`.
    """

    COMPACT = "compact"
    MRC2014 = "mrc2014"

    @property
    def prefix_size(self) -> int:
        """Bytes in front of the extended header."""
        if self is HeaderLayout.MRC2014:
            return HEADER_SIZE + LABEL_BLOCK_SIZE
        return HEADER_SIZE


class Origin(BaseModel):
    """Origin of the map in X, Y and Z.

    Attributes:
        x: Origin along X.
        y: Origin along Y.
        z: Origin along Z.
    """

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class ExtendedHeaderInfo(BaseModel):
    """Identification of the extended header contents.

    Attributes:
        ext_type: Four character type code, e.g. "FEI1" or "SERI".
        nversion: MRC format version, year * 10 + version within the year (20140 for MRC2014).
        convention: Software the extended header layout originates from.
    """

    model_config = ConfigDict(frozen=True)

    ext_type: str
    nversion: int
    convention: Convention


class Header(BaseModel):
    """Parsed MRC header. Instances are immutable.

    Use :func:`mrcdecode.decoder.header.read_header` to parse one from a byte stream.

    Attributes:
        nx: Number of columns (fast axis).
        ny: Number of rows.
        nz: Number of sections (slow axis).
        mode: Pixel encoding code, see :class:`mrcdecode.decoder.modes.ModeRegistry`.
        nxstart: Number of the first column in the map.
        nystart: Number of the first row in the map.
        nzstart: Number of the first section in the map.
        mx: Number of intervals along X of the unit cell.
        my: Number of intervals along Y of the unit cell.
        mz: Number of intervals along Z of the unit cell.
        xlen: Cell length along X in Angstrom.
        ylen: Cell length along Y in Angstrom.
        zlen: Cell length along Z in Angstrom.
        alpha: Cell angle in degrees.
        beta: Cell angle in degrees.
        gamma: Cell angle in degrees.
        mapc: Axis corresponding to columns (1=X, 2=Y, 3=Z).
        mapr: Axis corresponding to rows.
        maps: Axis corresponding to sections.
        amin: Minimum density value.
        amax: Maximum density value.
        amean: Mean density value.
        rms: RMS deviation of the map from the mean density.
        ispg: Space group number. 0 for image stacks, 401+ for volume stacks.
        nsymbt: Length of the extended header in bytes.
        extra: The raw 100 byte extra region.
        ext_header: Type tag and version of the extended header, if the tag is known.
        extended_header: The opaque extended header bytes.
        origin: Origin of the map.
        map: File type magic, always b"MAP ".
        machine_stamp: The raw 4 byte machine stamp.
        byte_order: Byte order decoded from the machine stamp.
        nlabl: Number of labels in use.
        labels: Label texts with padding stripped.
        layout: Placement of labels and extended header the header was parsed with.
    """

    model_config = ConfigDict(frozen=True)

    nx: int = Field(ge=0)
    ny: int = Field(ge=0)
    nz: int = Field(ge=0)
    mode: int
    nxstart: int = 0
    nystart: int = 0
    nzstart: int = 0
    mx: int = Field(ge=0)
    my: int = Field(ge=0)
    mz: int = Field(ge=0)
    xlen: float = 0.0
    ylen: float = 0.0
    zlen: float = 0.0
    alpha: float = 90.0
    beta: float = 90.0
    gamma: float = 90.0
    mapc: int = 1
    mapr: int = 2
    maps: int = 3
    amin: float = 0.0
    amax: float = 0.0
    amean: float = 0.0
    rms: float = 0.0
    ispg: int = 0
    nsymbt: int = Field(0, ge=0)
    extra: bytes = Field(b"\x00" * 100, repr=False)
    ext_header: Optional[ExtendedHeaderInfo] = None
    extended_header: bytes = Field(b"", repr=False)
    origin: Origin = Field(default_factory=Origin)
    map: bytes = MAP_ID
    machine_stamp: bytes
    byte_order: ByteOrder
    nlabl: int = Field(0, ge=0, le=MAX_LABELS)
    labels: Tuple[str, ...] = ()
    layout: HeaderLayout = HeaderLayout.COMPACT

    @field_validator("map")
    @classmethod
    def validate_map(cls, v) -> bytes:
        """Validate the magic."""
        assert v == MAP_ID, f"File type magic must be {MAP_ID!r}."
        return v

    @field_validator("labels")
    @classmethod
    def validate_labels(cls, v) -> Tuple[str, ...]:
        """Validate the labels."""
        assert len(v) <= MAX_LABELS, f"At most {MAX_LABELS} labels are allowed."
        return v

    @property
    def dimensions(self) -> Tuple[int, int, int]:
        """Grid size as (nx, ny, nz)."""
        return self.nx, self.ny, self.nz

    @property
    def start(self) -> Tuple[int, int, int]:
        return self.nxstart, self.nystart, self.nzstart

    @property
    def sampling(self) -> Tuple[int, int, int]:
        return self.mx, self.my, self.mz

    @property
    def cell_lengths(self) -> Tuple[float, float, float]:
        return self.xlen, self.ylen, self.zlen

    @property
    def cell_angles(self) -> Tuple[float, float, float]:
        return self.alpha, self.beta, self.gamma

    @property
    def axis_order(self) -> Tuple[int, int, int]:
        return self.mapc, self.mapr, self.maps

    @property
    def voxel_size(self) -> Tuple[float, float, float]:
        """Voxel size in Angstrom along X, Y and Z. Axes without sampling report 0.0."""
        return tuple(
            length / intervals if intervals else 0.0
            for length, intervals in zip(self.cell_lengths, self.sampling, strict=True)
        )

    @property
    def data_offset(self) -> int:
        """Absolute byte offset of the first pixel."""
        return self.layout.prefix_size + self.nsymbt

    @property
    def amin_amax_determined(self) -> bool:
        """False if `amax < amin`, the convention for "minimum and maximum are not well determined"."""
        return not self.amax < self.amin

    @property
    def amean_determined(self) -> bool:
        """False if `amean < min(amin, amax)`, the convention for "mean is not well determined"."""
        return not self.amean < min(self.amin, self.amax)

    @property
    def rms_determined(self) -> bool:
        """False if `rms < 0`, the convention for "rms is not well determined"."""
        return not self.rms < 0

    @property
    def is_image_stack(self) -> bool:
        """Space group 0 denotes a single image or an image stack."""
        return self.ispg == 0

    @property
    def is_volume(self) -> bool:
        """Space groups 1-230 denote a single volume."""
        return 1 <= self.ispg <= 230

    @property
    def is_volume_stack(self) -> bool:
        """Volume stacks use the space group number + 400."""
        return 401 <= self.ispg <= 630


class Limits(BaseModel):
    """Decoding limits. All sizes are in bytes.

    Attributes:
        decoding_buffer_size: Maximum size of any decoded buffer. When a whole volume is decoded at once this is the
            maximum size of the volume, when it is decoded one section at a time it is the maximum size of a section.
        metadata_value_size: Maximum size of any metadata value, i.e. the extended header.
        intermediate_buffer_size: Maximum amount of data read from the source in a single call, even if the whole
            volume is decoded at once.
    """

    model_config = ConfigDict(frozen=True)

    decoding_buffer_size: int = Field(256 * 1024 * 1024, ge=0)
    metadata_value_size: int = Field(1024 * 1024, ge=0)
    intermediate_buffer_size: int = Field(128 * 1024 * 1024, gt=0)

    @classmethod
    def unlimited(cls) -> "Limits":
        """Limits that never reject an allocation."""
        return cls(
            decoding_buffer_size=sys.maxsize,
            metadata_value_size=sys.maxsize,
            intermediate_buffer_size=sys.maxsize,
        )

    @classmethod
    def from_file(cls, filename: str) -> "Limits":
        """
        Load Limits from a JSON file.

        Args:
            filename: path to the file

        Returns:
            Limits: Initialized Limits object
        """
        with open(filename) as f:
            return cls(**json.load(f))
