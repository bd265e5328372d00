"""
Configuration for the volume processing pipeline.
"""

from dataclasses import dataclass

from .errors import InvalidParameter


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for the volume processing pipeline.

    Attributes:
        autocrop: Crop uniform page margins before anything else
        rotate_and_split: Gamma-adjust pages, rotate double spreads and add
            their two halves as separate pages
        rotate_only: Rotate double spreads without splitting them
        gamma: Gamma exponent applied in split mode (1.0 = unchanged,
            < 1.0 brightens, > 1.0 darkens)
        right_to_left: Reading direction; decides which half of a split
            spread comes first
        crop_tolerance: Largest fraction of each side autocrop may remove
        gamma_workers: Row bands processed in parallel (None = CPU count)
        strict_transforms: Fail the volume when rotating or splitting a
            page gives no usable result instead of keeping the page as is
    """

    autocrop: bool = False
    rotate_and_split: bool = False
    rotate_only: bool = False
    gamma: float = 1.0
    right_to_left: bool = True
    crop_tolerance: float = 0.1
    gamma_workers: int | None = None
    strict_transforms: bool = False

    def __post_init__(self) -> None:
        """Validate option combinations and ranges."""
        if self.rotate_and_split and self.rotate_only:
            raise InvalidParameter("rotate_and_split and rotate_only are mutually exclusive")

        if self.gamma <= 0:
            raise InvalidParameter(f"gamma must be greater than 0, got {self.gamma}")

        if not 0 <= self.crop_tolerance < 0.5:
            raise InvalidParameter(
                f"crop_tolerance must be in [0, 0.5), got {self.crop_tolerance}"
            )

        if self.gamma_workers is not None and self.gamma_workers < 1:
            raise InvalidParameter(f"gamma_workers must be >= 1, got {self.gamma_workers}")

    @property
    def double_page_mode(self) -> str | None:
        """'split', 'rotate' or None when double pages are left alone."""
        if self.rotate_and_split:
            return "split"
        if self.rotate_only:
            return "rotate"
        return None
