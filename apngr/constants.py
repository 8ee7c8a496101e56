"""
Constants and enums relating to GIF and APNG files. These are part of the public API.

GIF stores its animation controls as small integers in packed fields, APNG as single bytes in the fcTL chunk.
The enums here name both sets of values.
"""

__all__ = (
    "GifVersion",
    "DisposalMethod",
    "DisposeOp",
    "BlendOp",
    "ColorMode",
    "MAX_PALETTE_SIZE",
    "UNIQUE_COLOR_SENTINEL",
    "DEFAULT_IMAGE_NAME",
)


from enum import Enum


# Largest palette an indexed PNG (or GIF) can carry.
MAX_PALETTE_SIZE = 256

# Unique color counts saturate here once the palette capacity is exceeded.
UNIQUE_COLOR_SENTINEL = MAX_PALETTE_SIZE + 1

# File name given to an extracted default image.
DEFAULT_IMAGE_NAME = "default.png"


class GifVersion(Enum):
    """
    GIF revision. Stored in the file as the three ascii characters after "GIF".
    """
    GIF87a = 0
    GIF89a = 1

    def __str__(self) -> str:
        return self.name


class DisposalMethod(Enum):
    """
    Disposal method for GIF animation frames. Tells how to treat the previous frame after it's been displayed.

    See section 23.c.iv, under Graphic Control Extension. Values 4-7 are reserved.
    """
    NONE = 0
    NO_DISPOSE = 1
    RESTORE_BACKGROUND = 2
    RESTORE_PREVIOUS = 3


class DisposeOp(Enum):
    """
    APNG dispose_op. How the frame's region of the canvas is reset before the next frame is drawn.
    """
    NONE = 0
    BACKGROUND = 1
    PREVIOUS = 2

    def __str__(self) -> str:
        return self.name.capitalize()


class BlendOp(Enum):
    """
    APNG blend_op. SOURCE replaces the canvas region, OVER alpha-composites onto it.
    """
    SOURCE = 0
    OVER = 1

    def __str__(self) -> str:
        return self.name.capitalize()


class ColorMode(Enum):
    """
    Output color space chosen for a converted animation.
    """
    PALETTED = 0
    TRUE_COLOR = 1
