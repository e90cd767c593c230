from typing import Any, Optional, Tuple

import fsspec
import numpy as np

from mrcdecode.decoder import Decoder
from mrcdecode.decoder.header import read_header as parse_header
from mrcdecode.models import Header, HeaderLayout, Limits
from mrcdecode.util.log import get_logger

logger = get_logger(__name__)


def open_decoder(
    path: str,
    limits: Optional[Limits] = None,
    layout: HeaderLayout = HeaderLayout.COMPACT,
    **storage_options: Any,
) -> Decoder:
    """Open an MRC file and construct a decoder for it.

    The returned decoder owns the file and closes it in :meth:`Decoder.close` or when used as a context manager.

    Args:
        path (str): Local path or fsspec URL of the MRC file (e.g. "s3://bucket/tomo.mrc").
        limits (Limits): Decoding limits. Defaults to :class:`~mrcdecode.models.Limits`.
        layout (HeaderLayout): Placement of the labels and the extended header. Files written by MRC2014 tools
            such as mrcfile need `HeaderLayout.MRC2014`.
        **storage_options: Options passed on to the fsspec filesystem.

    Returns:
        Decoder: The initialized decoder.
    """
    f = fsspec.open(path, "rb", **storage_options).open()
    try:
        decoder = Decoder(f, limits=limits, close_source=True, layout=layout)
    except BaseException:
        f.close()
        raise

    logger.debug(f"Opened {path}: {decoder!r}")
    return decoder


def read_header(
    path: str,
    limits: Optional[Limits] = None,
    layout: HeaderLayout = HeaderLayout.COMPACT,
    **storage_options: Any,
) -> Header:
    """Read only the header of an MRC file.

    Unlike :func:`open_decoder`, this also succeeds for files with an unsupported mode.

    Args:
        path (str): Local path or fsspec URL of the MRC file.
        limits (Limits): Limits applied to the extended header.
        layout (HeaderLayout): Placement of the labels and the extended header. Files written by MRC2014 tools
            such as mrcfile need `HeaderLayout.MRC2014`.
        **storage_options: Options passed on to the fsspec filesystem.

    Returns:
        Header: The parsed header.
    """
    with fsspec.open(path, "rb", **storage_options) as f:
        return parse_header(f, limits, layout)


def read_volume(
    path: str,
    limits: Optional[Limits] = None,
    layout: HeaderLayout = HeaderLayout.COMPACT,
    **storage_options: Any,
) -> Tuple[np.ndarray, Tuple[float, float, float]]:
    """Read the whole pixel data block of an MRC file.

    Args:
        path (str): Local path or fsspec URL of the MRC file.
        limits (Limits): Decoding limits. The volume must fit into `limits.decoding_buffer_size`.
        layout (HeaderLayout): Placement of the labels and the extended header. Files written by MRC2014 tools
            such as mrcfile need `HeaderLayout.MRC2014`.
        **storage_options: Options passed on to the fsspec filesystem.

    Returns:
        (array, voxel_size): The decoded volume and the voxel size along X, Y and Z in Angstrom.
    """
    with open_decoder(path, limits=limits, layout=layout, **storage_options) as decoder:
        volume = decoder.decode_volume()
        voxel_size = decoder.header.voxel_size
    return volume, voxel_size
