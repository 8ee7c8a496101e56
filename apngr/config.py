"""
Per-invocation configuration. Options is built once from the command line and handed to every stage that needs it.
"""

import argparse
import typing as t

from .constants import BlendOp, DisposeOp
from .errors import ConfigurationError

__all__ = (
    "Options",
    "DISPOSE_NAMES",
    "BLEND_NAMES",
    "parse_dispose",
    "parse_blend",
    "check_delay",
)

UINT16_MAX = 0xFFFF

# APNG stores num_plays as a 31-bit value.
MAX_LOOP_COUNT = 0x7FFFFFFF

DISPOSE_NAMES = {
    "none": DisposeOp.NONE,
    "background": DisposeOp.BACKGROUND,
    "previous": DisposeOp.PREVIOUS,
}

BLEND_NAMES = {
    "source": BlendOp.SOURCE,
    "over": BlendOp.OVER,
}


def parse_dispose(name: str) -> DisposeOp:
    """
    Map a dispose operation name to DisposeOp. Unknown names mean background.
    """
    return DISPOSE_NAMES.get(name.lower(), DisposeOp.BACKGROUND)


def parse_blend(name: str) -> BlendOp:
    """
    Map a blend operation name to BlendOp. Anything but "over" means source.
    """
    return BLEND_NAMES.get(name.lower(), BlendOp.SOURCE)


def check_delay(numerator: int, denominator: int) -> None:
    """
    Raise ConfigurationError unless numerator/denominator fit an fcTL chunk and the denominator is nonzero.
    """
    for name, value in (("numerator", numerator), ("denominator", denominator)):
        if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= UINT16_MAX:
            msg = "delay {} must be an integer between 0 and {}, got {!r}"
            raise ConfigurationError(msg.format(name, UINT16_MAX, value))

    if denominator == 0:
        raise ConfigurationError("delay denominator must not be zero")


class Options(t.NamedTuple):
    """
    Immutable settings shared by all commands. Fields a command doesn't use are ignored.
    """
    numerator: int = 1
    denominator: int = 10
    dispose: DisposeOp = DisposeOp.BACKGROUND
    blend: BlendOp = BlendOp.SOURCE
    loop_count: int = 0
    default_image: bool = False
    output_dir: str = "."
    start: int = 0
    padding: t.Optional[int] = None
    number_default: bool = False
    maintain_paletted: bool = False

    def validate(self) -> "Options":
        check_delay(self.numerator, self.denominator)

        if not 0 <= self.loop_count <= MAX_LOOP_COUNT:
            raise ConfigurationError("loop count must be between 0 and {}".format(MAX_LOOP_COUNT))

        if self.padding is not None and self.padding < 0:
            raise ConfigurationError("padding must not be negative")

        if self.start < 0:
            raise ConfigurationError("numbering start must not be negative")

        return self

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "Options":
        """
        Build and validate options from parsed arguments. Missing attributes keep their defaults.
        """
        defaults = cls()
        options = cls(
            numerator=getattr(args, "numerator", defaults.numerator),
            denominator=getattr(args, "denominator", defaults.denominator),
            dispose=parse_dispose(getattr(args, "dispose", "background")),
            blend=parse_blend(getattr(args, "blend", "source")),
            loop_count=getattr(args, "loop_count", defaults.loop_count),
            default_image=getattr(args, "default", defaults.default_image),
            output_dir=getattr(args, "output_dir", defaults.output_dir),
            start=getattr(args, "start", defaults.start),
            padding=getattr(args, "padding", defaults.padding),
            number_default=getattr(args, "number_default", defaults.number_default),
            maintain_paletted=getattr(args, "maintain_paletted", defaults.maintain_paletted),
        )

        return options.validate()
