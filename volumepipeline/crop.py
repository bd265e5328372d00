"""
Automatic margin cropping for every page of a volume.
"""

import logging
from typing import Callable

from PIL import Image

from . import imageops
from .errors import TransformFailure
from .pages import PageStore
from .progress import NullProgress, ProgressSink

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.1

AutoCrop = Callable[[Image.Image, float], Image.Image]


def crop_pages(
    store: PageStore,
    tolerance: float = DEFAULT_TOLERANCE,
    auto_crop: AutoCrop = imageops.auto_crop,
    progress: ProgressSink | None = None,
) -> PageStore:
    """Crop every page in order.

    Args:
        store: Input pages (not modified)
        tolerance: Largest fraction of each side that may be cropped away
        auto_crop: Cropping function, raising on failure
        progress: Optional progress sink

    Returns:
        New store with cropped pages in the same order

    Raises:
        TransformFailure: On the first page that fails; nothing is returned
    """
    progress = progress or NullProgress()
    progress.increase_total(len(store))

    cropped = PageStore()
    for page in store:
        try:
            image = auto_crop(page.image, tolerance)
        except Exception as e:
            progress.cancel("Error")
            raise TransformFailure(page.chapter_id, page.page_id, e) from e
        cropped.append(page.with_image(image))
        progress.advance()

    progress.done()
    logger.debug(f"Cropped {len(cropped)} pages")
    return cropped
