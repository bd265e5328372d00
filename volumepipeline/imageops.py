"""
Default page image primitives: spread detection, rotation, splitting and
margin cropping.

These are simple Pillow-only heuristics. The pipeline stages only depend on
their call signatures, so smarter implementations can be plugged in.
"""

import logging

from PIL import Image, ImageChops

logger = logging.getLogger(__name__)

BBox = tuple[int, int, int, int]

# Grey-level difference from the background that counts as content
BACKGROUND_THRESHOLD = 24


def is_double_page(image: Image.Image, threshold: float = 1.0) -> bool:
    """Check if an image is a double-page spread based on aspect ratio."""
    width, height = image.size
    if height == 0:
        return False
    return width / height > threshold


def rotate_to_landscape(image: Image.Image) -> Image.Image | None:
    """Turn a spread on its side so it fills a portrait screen.

    Returns None when the image has no pixels to rotate.
    """
    width, height = image.size
    if width == 0 or height == 0:
        return None
    return image.rotate(90, expand=True)


def split_vertically(image: Image.Image) -> tuple[Image.Image, Image.Image] | None:
    """Cut an image down the middle.

    Returns:
        (left, right) halves, or None if the image is too narrow to split
    """
    width, height = image.size
    if width < 2 or height == 0:
        return None
    middle = width // 2
    left = image.crop((0, 0, middle, height))
    right = image.crop((middle, 0, width, height))
    return left, right


def find_content_bbox(image: Image.Image) -> BBox | None:
    """Bounding box of everything that differs from the background colour.

    The background is taken from the top-left pixel. Returns None for a
    blank page.
    """
    gray = image.convert("L")
    background = Image.new("L", gray.size, gray.getpixel((0, 0)))
    diff = ImageChops.difference(gray, background)
    mask = diff.point(lambda p: 255 if p > BACKGROUND_THRESHOLD else 0)
    return mask.getbbox()


def limit_bbox(bbox: BBox, size: tuple[int, int], tolerance: float) -> BBox:
    """Clamp a crop box so no side loses more than `tolerance` of the image."""
    width, height = size
    max_x = int(width * tolerance)
    max_y = int(height * tolerance)
    left, top, right, bottom = bbox
    return (
        min(left, max_x),
        min(top, max_y),
        max(right, width - max_x),
        max(bottom, height - max_y),
    )


def auto_crop(image: Image.Image, tolerance: float = 0.1) -> Image.Image:
    """Crop uniform margins, removing at most `tolerance` of each side.

    Raises:
        ValueError: If the tolerance is out of range or the image is empty
    """
    if not 0 <= tolerance < 0.5:
        raise ValueError(f"crop tolerance must be in [0, 0.5), got {tolerance}")

    width, height = image.size
    if width == 0 or height == 0:
        raise ValueError("image has no pixels")

    bbox = find_content_bbox(image)
    if bbox is None:
        return image

    bbox = limit_bbox(bbox, image.size, tolerance)
    if bbox == (0, 0, width, height):
        return image
    return image.crop(bbox)
