"""
Assembles AnimationSequences from decoded sources: GIF images, or still images listed on the command line or in a
frame descriptor.
"""

import typing as t

from PIL import Image

from .animation import AnimationFrame, AnimationSequence
from .config import Options, check_delay
from .constants import BlendOp, DisposalMethod, DisposeOp, MAX_PALETTE_SIZE
from .errors import ConfigurationError
from .frame import TRANSPARENT, IndexedFrame, RasterFrame, raster_from_image
from .gif import Gif, GifImage
from .palette import resolve_color_space

__all__ = (
    "FrameDescriptor",
    "GIF_DISPOSAL",
    "dispose_op_for_gif",
    "gif_loop_count",
    "build_from_gif",
    "build_from_stills",
    "build_still",
    "load_still",
)

GIF_DISPOSAL = {
    DisposalMethod.NO_DISPOSE: DisposeOp.NONE,
    DisposalMethod.RESTORE_BACKGROUND: DisposeOp.BACKGROUND,
    DisposalMethod.RESTORE_PREVIOUS: DisposeOp.PREVIOUS,
}

# APNG's num_plays is stored in 31 bits.
MAX_PLAYS = 0x7FFFFFFF


class FrameDescriptor(t.NamedTuple):
    """
    One still image to animate. Fields left as None fall back to the global options.
    """
    image: str
    numerator: t.Optional[int] = None
    denominator: t.Optional[int] = None
    is_default: t.Optional[bool] = None
    dispose: t.Optional[DisposeOp] = None
    blend: t.Optional[BlendOp] = None


def dispose_op_for_gif(disposal: DisposalMethod) -> DisposeOp:
    """
    Translate a GIF disposal method. Unspecified (and reserved) disposal restores the background.
    """
    return GIF_DISPOSAL.get(disposal, DisposeOp.BACKGROUND)


def gif_loop_count(loop_count: t.Optional[int]) -> int:
    """
    Translate a NETSCAPE2.0 loop count into APNG num_plays.

    A GIF without a looping block plays once. The block's count is the number of repeats after the first play, with
    0 meaning forever, which is also what 0 means in APNG.
    """
    if loop_count is None:
        return 1

    if loop_count == 0:
        return 0

    return min(loop_count + 1, MAX_PLAYS)


def _fill_index(frame: IndexedFrame, path: str) -> int:
    """
    Pick the index used to pad a GIF frame onto the full canvas, appending a transparent color if needed. A full
    palette without a transparent entry pads with index 0.
    """
    for i, color in enumerate(frame.palette):
        if color[3] == 0:
            return i

    if len(frame.palette) < MAX_PALETTE_SIZE:
        frame.palette.append(TRANSPARENT)
        return len(frame.palette) - 1

    print("warn: {}: palette full, padding the first frame with color 0".format(path))
    return 0


def _gif_canvas(gif: Gif) -> t.Tuple[int, int]:
    """
    The logical screen, grown to contain frames that stick out of it.
    """
    width, height = gif.screen_size

    for img in gif.images:
        (x, y), (w, h) = img.offset, img.size
        width = max(width, x + w)
        height = max(height, y + h)

    return width, height


def _gif_raster(img: GifImage, index: int, canvas: t.Tuple[int, int]) -> IndexedFrame:
    raster = img.to_raster()

    if index == 0 and (img.offset != (0, 0) or img.size != canvas):
        # APNG's first frame spans the canvas
        x, y = img.offset
        raster = raster.expanded(canvas[0], canvas[1], x, y, _fill_index(raster, img.gif.path))

    return raster


def build_from_gif(gif: Gif, options: Options) -> AnimationSequence:
    """
    Convert a decoded GIF into an animation sequence.

    Frames keep their position on the canvas as offsets, their delay in hundredths of a second as delay/100, and are
    always alpha blended, since GIF frames are drawn over the canvas.
    """
    canvas = _gif_canvas(gif)
    rasters: t.List[RasterFrame] = [_gif_raster(img, i, canvas) for i, img in enumerate(gif.images)]

    result = resolve_color_space(rasters, options.maintain_paletted)
    if result.substituted:
        msg = "warn: {}: palette full, {} colors approximated by their nearest palette entry"
        print(msg.format(gif.path, result.substituted))

    frames = []
    for i, (img, raster) in enumerate(zip(gif.images, result.frames)):
        control = img.graphic_control
        x, y = (0, 0) if i == 0 else img.offset

        frames.append(AnimationFrame(
            raster,
            x_offset=x,
            y_offset=y,
            delay_numerator=control.delay if control else 0,
            delay_denominator=100,
            dispose_op=dispose_op_for_gif(control.disposal_method) if control else DisposeOp.BACKGROUND,
            blend_op=BlendOp.OVER))

    return AnimationSequence(frames, loop_count=gif_loop_count(gif.loop_count))


def load_still(path: str) -> RasterFrame:
    """
    Decode a still image with Pillow. Paletted images stay indexed.
    """
    with Image.open(path) as image:
        image.load()
        return raster_from_image(image)


def build_still(path: str, options: Options) -> AnimationSequence:
    """
    Wrap a single still image into a one frame animation.
    """
    frame = AnimationFrame(
        load_still(path),
        delay_numerator=options.numerator,
        delay_denominator=options.denominator,
        dispose_op=options.dispose,
        blend_op=options.blend)

    return AnimationSequence([frame], loop_count=options.loop_count)


def build_from_stills(
    descriptors: t.Sequence[FrameDescriptor],
    options: Options,
    loader: t.Callable[[str], RasterFrame] = load_still
) -> AnimationSequence:
    """
    Build an animation from still images. Per-frame settings in the descriptors override the options.

    The first image sets the canvas size. options.default_image flags the first frame as default image unless its
    descriptor says otherwise.
    """
    if not descriptors:
        raise ConfigurationError("no frames to animate")

    for i, descriptor in enumerate(descriptors):
        if not descriptor.image:
            raise ConfigurationError("frame {} has no image".format(i))

        if descriptor.is_default and i != 0:
            raise ConfigurationError("frame {} is flagged as default image, only the first frame may be".format(i))

    rasters = [loader(descriptor.image) for descriptor in descriptors]

    canvas = rasters[0].size
    for descriptor, raster in zip(descriptors, rasters):
        if raster.width > canvas[0] or raster.height > canvas[1]:
            msg = "{} is {}x{}, larger than the {}x{} canvas set by the first frame"
            raise ConfigurationError(msg.format(descriptor.image, raster.width, raster.height, canvas[0], canvas[1]))

    result = resolve_color_space(rasters, options.maintain_paletted)
    if result.substituted:
        print("warn: palette full, {} colors approximated by their nearest palette entry".format(result.substituted))

    frames = []
    for i, (descriptor, raster) in enumerate(zip(descriptors, result.frames)):
        numerator = options.numerator if descriptor.numerator is None else descriptor.numerator
        denominator = options.denominator if descriptor.denominator is None else descriptor.denominator
        check_delay(numerator, denominator)

        if descriptor.is_default is None:
            is_default = options.default_image and i == 0
        else:
            is_default = descriptor.is_default

        frames.append(AnimationFrame(
            raster,
            delay_numerator=numerator,
            delay_denominator=denominator,
            dispose_op=options.dispose if descriptor.dispose is None else descriptor.dispose,
            blend_op=options.blend if descriptor.blend is None else descriptor.blend,
            is_default=is_default))

    return AnimationSequence(frames, loop_count=options.loop_count)
