"""Tests for the autocrop stage."""

import pytest
from PIL import Image
from volumepipeline.crop import crop_pages
from volumepipeline.errors import TransformFailure
from volumepipeline.pages import Page, PageStore


class CountingProgress:
    def __init__(self):
        self.total = 0
        self.current = 0
        self.cancels = []
        self.done_calls = 0

    def increase_total(self, n):
        self.total += n

    def advance(self, n=1):
        self.current += n

    def cancel(self, label):
        self.cancels.append(label)

    def done(self):
        self.done_calls += 1


def framed_page(page_id: int, chapter: str = "1") -> Page:
    """100x100 white page with a black 20x20 block in the middle."""
    image = Image.new("L", (100, 100), 255)
    image.paste(0, (40, 40, 60, 60))
    return Page("1", chapter, page_id, image)


class TestCropPages:
    """Tests for cropping every page."""

    def test_crop_limited_by_tolerance(self):
        """At most 10% of each side is removed."""
        output = crop_pages(PageStore([framed_page(0)]), tolerance=0.1)
        assert output[0].image.size == (80, 80)

    def test_order_and_ids_preserved(self):
        """Pages stay in order with their identifiers."""
        store = PageStore([framed_page(2), framed_page(0), framed_page(1)])
        output = crop_pages(store)
        assert [p.page_id for p in output] == [2, 0, 1]

    def test_input_untouched(self):
        """Cropping builds new page records."""
        page = framed_page(0)
        crop_pages(PageStore([page]))
        assert page.image.size == (100, 100)

    def test_custom_cropper(self):
        """The tolerance is passed to the cropping function."""
        seen = []

        def cropper(image, tolerance):
            seen.append(tolerance)
            return image

        crop_pages(PageStore([framed_page(0)]), tolerance=0.25, auto_crop=cropper)
        assert seen == [0.25]

    def test_first_failure_names_page(self):
        """A failure on page 2 of 3 reports chapter and page 2."""
        calls = []

        def cropper(image, tolerance):
            calls.append(image)
            if len(calls) == 2:
                raise ValueError("boom")
            return image

        store = PageStore([framed_page(1, "7"), framed_page(2, "7"), framed_page(3, "7")])
        progress = CountingProgress()
        with pytest.raises(TransformFailure) as excinfo:
            crop_pages(store, auto_crop=cropper, progress=progress)

        error = excinfo.value
        assert (error.chapter_id, error.page_id) == ("7", 2)
        assert str(error) == "chapter 7: page 2: boom"
        assert len(calls) == 2
        assert progress.cancels == ["Error"]
        assert progress.done_calls == 0

    def test_progress_counts_pages(self):
        """One progress step per page, then done."""
        progress = CountingProgress()
        crop_pages(PageStore([framed_page(0), framed_page(1)]), progress=progress)
        assert progress.total == progress.current == 2
        assert progress.done_calls == 1
