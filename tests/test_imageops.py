"""Tests for the default image primitives."""

import pytest
from PIL import Image
from volumepipeline.imageops import (
    auto_crop,
    find_content_bbox,
    is_double_page,
    limit_bbox,
    rotate_to_landscape,
    split_vertically,
)


class TestDoublePageDetection:
    """Tests for spread detection."""

    def test_wide_image_is_double(self):
        """Wider than tall means a spread."""
        assert is_double_page(Image.new("L", (12, 6)))

    def test_portrait_is_single(self):
        """Portrait pages are single pages."""
        assert not is_double_page(Image.new("L", (4, 6)))

    def test_square_is_single(self):
        """A square page is not a spread."""
        assert not is_double_page(Image.new("L", (6, 6)))

    def test_threshold(self):
        """A higher threshold needs a wider image."""
        assert not is_double_page(Image.new("L", (7, 6)), threshold=1.2)


class TestRotateAndSplit:
    """Tests for rotation and splitting."""

    def test_rotate_swaps_dimensions(self):
        """Rotation turns the spread on its side."""
        rotated = rotate_to_landscape(Image.new("L", (12, 6)))
        assert rotated.size == (6, 12)

    def test_split_halves(self):
        """Splitting cuts at the middle column."""
        image = Image.new("L", (11, 4), 0)
        image.paste(255, (5, 0, 11, 4))
        left, right = split_vertically(image)
        assert left.size == (5, 4)
        assert right.size == (6, 4)
        assert left.getpixel((0, 0)) == 0
        assert right.getpixel((0, 0)) == 255

    def test_split_too_narrow(self):
        """A one-pixel-wide image cannot be split."""
        assert split_vertically(Image.new("L", (1, 4))) is None


class TestAutoCrop:
    """Tests for margin cropping."""

    def test_content_bbox(self):
        """Content is whatever differs from the corner colour."""
        image = Image.new("RGB", (50, 40), (255, 255, 255))
        image.paste((0, 0, 0), (10, 5, 30, 25))
        assert find_content_bbox(image) == (10, 5, 30, 25)

    def test_limit_bbox(self):
        """No side loses more than the tolerance."""
        assert limit_bbox((40, 40, 60, 60), (100, 100), 0.1) == (10, 10, 90, 90)
        assert limit_bbox((5, 5, 95, 95), (100, 100), 0.1) == (5, 5, 95, 95)

    def test_small_margins_fully_removed(self):
        """Margins within the tolerance are cropped away completely."""
        image = Image.new("L", (100, 100), 255)
        image.paste(0, (5, 5, 95, 95))
        assert auto_crop(image, 0.1).size == (90, 90)

    def test_blank_page_unchanged(self):
        """A page without content is returned as is."""
        image = Image.new("L", (20, 20), 255)
        assert auto_crop(image) is image

    def test_full_bleed_unchanged(self):
        """Content touching every edge needs no crop."""
        image = Image.new("L", (20, 20), 255)
        image.paste(0, (0, 10, 20, 11))
        image.paste(0, (10, 0, 11, 20))
        assert auto_crop(image) is image

    def test_invalid_tolerance(self):
        """Tolerances of half the page or more are rejected."""
        with pytest.raises(ValueError):
            auto_crop(Image.new("L", (10, 10)), 0.5)
