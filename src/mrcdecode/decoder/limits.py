"""Allocation guard.

Header fields are attacker or corruption controlled, so every buffer size derived from them is checked against
the configured :class:`~mrcdecode.models.Limits` before anything is allocated.
"""

import math
from typing import Optional, Tuple

import numpy as np

from mrcdecode.errors import LimitsExceededError


def required_bytes(*factors: int) -> int:
    """Product of non-negative size factors.

    Python integers do not overflow, so a huge header can never wrap around to a small size.
    """
    for factor in factors:
        if factor < 0:
            raise ValueError(f"Size factors must be non-negative, got {factor}.")
    return math.prod(factors)


def check_allocation(size: int, limit: int, what: Optional[str] = None) -> None:
    """Raise if `size` bytes exceed `limit`.

    Raises:
        LimitsExceededError: If the allocation would be too large.
    """
    if size > limit:
        raise LimitsExceededError(size, limit, what)


def allocate(shape: Tuple[int, ...], dtype: np.dtype, limit: int, what: Optional[str] = None) -> np.ndarray:
    """Allocate an uninitialized buffer after checking its size against `limit`.

    Args:
        shape: Shape of the buffer.
        dtype: Element type of the buffer.
        limit: Ceiling in bytes.
        what: Description used in the error message.

    Returns:
        np.ndarray: A C-contiguous array in native byte order.
    """
    dtype = np.dtype(dtype)
    check_allocation(required_bytes(*shape, dtype.itemsize), limit, what)
    return np.empty(shape, dtype=dtype)
