"""
Gamma correction with a precomputed lookup table.

The table is applied in parallel over contiguous bands of rows. Every worker
reads its own band of the source array and writes the same band of a single
preallocated output array, so no locking is needed for pixel writes.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np
from PIL import Image

from .errors import InvalidParameter

logger = logging.getLogger(__name__)

# Modes handled directly; anything else is converted to RGBA first
_DIRECT_MODES = {"L", "LA", "RGB", "RGBA"}


@dataclass(frozen=True)
class GammaTable:
    """256-entry brightness lookup table for one gamma value."""

    gamma: float
    lut: np.ndarray

    @property
    def identity(self) -> bool:
        return self.gamma == 1


def build_table(gamma: float) -> GammaTable:
    """Build the lookup table for a gamma exponent.

    Entry i is round((i / 255) ** gamma * 255), clamped to 0..255.
    Values below 1 brighten, values above 1 darken.

    Raises:
        InvalidParameter: If gamma is not positive
    """
    if gamma <= 0:
        raise InvalidParameter(f"gamma must be greater than 0, got {gamma}")

    if gamma == 1:
        return GammaTable(gamma=1.0, lut=np.arange(256, dtype=np.uint8))

    levels = np.arange(256, dtype=np.float64) / 255.0
    values = np.floor(np.power(levels, gamma) * 255.0 + 0.5)
    lut = np.clip(values, 0, 255).astype(np.uint8)
    return GammaTable(gamma=float(gamma), lut=lut)


def row_bands(height: int, workers: int) -> list[tuple[int, int]]:
    """Split [0, height) into at most `workers` contiguous (start, end) bands.

    The last band absorbs the remainder rows.
    """
    workers = max(1, min(workers, height))
    chunk = height // workers
    bands = []
    for i in range(workers):
        start = i * chunk
        end = height if i == workers - 1 else start + chunk
        bands.append((start, end))
    return bands


def apply_table(
    image: Image.Image,
    table: GammaTable,
    workers: int | None = None,
) -> Image.Image:
    """Remap the colour channels of an image through a gamma table.

    Alpha passes through unchanged. Blocks until every band is done.

    Args:
        image: Source image (not modified)
        table: Table from build_table()
        workers: Number of row bands processed in parallel
            (defaults to the CPU count)

    Returns:
        A new image, or the input image itself for the identity table
    """
    if table.identity:
        return image

    if image.mode not in _DIRECT_MODES:
        image = image.convert("RGBA")

    source = np.asarray(image)
    if source.size == 0:
        return image.copy()

    output = np.empty_like(source)
    has_alpha = image.mode in ("LA", "RGBA")
    height = source.shape[0]

    lut = table.lut

    def process_band(start: int, end: int) -> None:
        band = source[start:end]
        if source.ndim == 2:
            output[start:end] = lut[band]
        elif has_alpha:
            output[start:end, :, :-1] = lut[band[:, :, :-1]]
            output[start:end, :, -1] = band[:, :, -1]
        else:
            output[start:end] = lut[band]

    bands = row_bands(height, workers or os.cpu_count() or 4)
    with ThreadPoolExecutor(max_workers=len(bands)) as executor:
        futures = [executor.submit(process_band, start, end) for start, end in bands]
        for future in futures:
            future.result()

    logger.debug(f"Applied gamma {table.gamma} to {image.size} image in {len(bands)} bands")
    return Image.fromarray(output)


def adjust_gamma(
    image: Image.Image,
    gamma: float,
    workers: int | None = None,
) -> Image.Image:
    """Build the table for gamma and apply it to image."""
    return apply_table(image, build_table(gamma), workers=workers)
