"""
File names for extracted frames.
"""

import typing as t

from .constants import DEFAULT_IMAGE_NAME

__all__ = (
    "FrameNamer",
)


class FrameNamer:
    """
    Names extracted frames "<n>.png", zero-padded to a common width.

    Args:
        total: Number of frames being extracted. Sets the default padding width.
        padding: Explicit zero-padding width.
        start: Number given to the first numbered frame.
        number_default: If set, a default image is numbered like any other frame instead of being named default.png.
        has_default: Whether the first frame is a default image.
    """
    def __init__(
        self,
        total: int,
        padding: t.Optional[int] = None,
        start: int = 0,
        number_default: bool = False,
        has_default: bool = False
    ):
        self.total = total
        self.width = len(str(total)) if padding is None else padding
        self.start = start
        self.number_default = number_default
        self.has_default = has_default

    def name(self, index: int) -> str:
        if self.has_default and not self.number_default:
            if index == 0:
                return DEFAULT_IMAGE_NAME

            # the default image doesn't use up a number
            index -= 1

        return str(self.start + index).zfill(self.width) + ".png"

    def names(self) -> t.List[str]:
        return [self.name(i) for i in range(self.total)]
