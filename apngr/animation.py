"""
Format independent animation model. An AnimationSequence is what the APNG encoder consumes and the decoder produces.
"""

import typing as t

from .constants import BlendOp, DisposeOp
from .errors import ConfigurationError
from .frame import RasterFrame

__all__ = (
    "AnimationFrame",
    "AnimationSequence",
)


FRAME_TEMPLATE = """	Width x Height: {f.image.width}x{f.image.height}
	XOffset x YOffset: {f.x_offset}x{f.y_offset}
	Delay: {f.delay:f} ({f.delay_numerator}/{f.delay_denominator})
	Dispose: {f.dispose_op} ({f.dispose_op.value})
	Blend: {f.blend_op} ({f.blend_op.value})"""

SEQUENCE_TEMPLATE = """Found {count} frames!
canvas size: {s.canvas_size[0]}x{s.canvas_size[1]}
loop count:  {loops}
loop length: {s.loop_length} frames"""


class AnimationFrame:
    """
    One frame of an animation: pixels plus placement, timing, disposal and blending.

    The delay is kept as a fraction of seconds so that sources counting in hundredths of a second convert exactly.
    """
    def __init__(
        self,
        image: RasterFrame,
        x_offset: int = 0,
        y_offset: int = 0,
        delay_numerator: int = 0,
        delay_denominator: int = 100,
        dispose_op: DisposeOp = DisposeOp.BACKGROUND,
        blend_op: BlendOp = BlendOp.SOURCE,
        is_default: bool = False
    ):
        self.image = image
        self.x_offset = x_offset
        self.y_offset = y_offset
        self.delay_numerator = delay_numerator
        self.delay_denominator = delay_denominator
        self.dispose_op = dispose_op
        self.blend_op = blend_op
        self.is_default = is_default

    def __repr__(self) -> str:
        return "AnimationFrame({!r} @({}, {}), {}/{}, {}, {}{})".format(
            self.image, self.x_offset, self.y_offset, self.delay_numerator, self.delay_denominator,
            self.dispose_op, self.blend_op, ", default" if self.is_default else "")

    @property
    def delay(self) -> float:
        """
        Delay in seconds. A zero denominator counts as 100, like in APNG.
        """
        return self.delay_numerator / (self.delay_denominator or 100)

    def pretty_print(self, index: int) -> None:
        if self.is_default:
            print("Default Image (not included in animation)")
        else:
            print("Frame {}".format(index))

        print(FRAME_TEMPLATE.format(f=self))


class AnimationSequence:
    """
    An ordered list of frames plus a loop count, where a loop count of 0 loops forever.

    Only the first frame may be flagged as the default image. A default image is stored in the file, but isn't part
    of the animation itself.
    """
    def __init__(self, frames: t.Sequence[AnimationFrame], loop_count: int = 0):
        frames = list(frames)

        if not frames:
            raise ConfigurationError("an animation needs at least one frame")

        for i, frame in enumerate(frames[1:], start=1):
            if frame.is_default:
                raise ConfigurationError("frame {} is flagged as default image, only the first frame may be".format(i))

        self.frames = frames
        self.loop_count = loop_count

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> t.Iterator[AnimationFrame]:
        return iter(self.frames)

    @property
    def default_frame(self) -> t.Optional[AnimationFrame]:
        if self.frames[0].is_default:
            return self.frames[0]

        return None

    @property
    def animated_frames(self) -> t.List[AnimationFrame]:
        return [frame for frame in self.frames if not frame.is_default]

    @property
    def loop_length(self) -> int:
        """
        Number of frames played in one loop of the animation.
        """
        return len(self.animated_frames)

    @property
    def canvas_size(self) -> t.Tuple[int, int]:
        width = max(frame.x_offset + frame.image.width for frame in self.frames)
        height = max(frame.y_offset + frame.image.height for frame in self.frames)
        return width, height

    def pretty_print(self) -> None:
        loops = "infinite" if self.loop_count == 0 else self.loop_count
        print(SEQUENCE_TEMPLATE.format(s=self, count=len(self.frames), loops=loops))

        number = 0
        for frame in self.frames:
            frame.pretty_print(number)

            if not frame.is_default:
                number += 1
