"""
Palette analysis and consolidation for indexed frame sequences.

APNG allows a single PLTE chunk for the whole animation, while GIF lets every frame carry its own color table. To
keep a converted animation paletted, the per-frame palettes are merged into one shared palette and the pixel indices
of every frame are rewritten against it. When the merged palette would need more than 256 colors, the animation is
either upgraded to true color, or, if the caller insists on keeping it paletted, the overflowing colors are
approximated by their nearest existing entry.
"""

import typing as t

from .constants import ColorMode, MAX_PALETTE_SIZE, UNIQUE_COLOR_SENTINEL
from .frame import Color, IndexedFrame, Palette, RasterFrame, TrueColorFrame

__all__ = (
    "PaletteReport",
    "ConsolidationReport",
    "ColorSpaceResult",
    "analyze_palettes",
    "decide_color_mode",
    "color_distance",
    "nearest_color_index",
    "consolidate_palettes",
    "upgrade_to_truecolor",
    "resolve_color_space",
)


class PaletteReport(t.NamedTuple):
    identical_palettes: bool
    # Saturates at UNIQUE_COLOR_SENTINEL.
    unique_color_count: int


class ConsolidationReport(t.NamedTuple):
    palette: Palette
    # Number of colors mapped through the nearest-color fallback.
    substituted: int


class ColorSpaceResult(t.NamedTuple):
    frames: t.List[RasterFrame]
    mode: ColorMode
    substituted: int


def analyze_palettes(frames: t.Sequence[IndexedFrame]) -> PaletteReport:
    """
    Report whether every frame uses the same palette as the first, and how many distinct colors all palettes hold
    together. Counting stops as soon as the palette capacity is exceeded.
    """
    first = frames[0].palette
    identical = all(frame.palette == first for frame in frames[1:])

    seen: t.Set[Color] = set()
    for frame in frames:
        seen.update(frame.palette)

        if len(seen) > MAX_PALETTE_SIZE:
            return PaletteReport(identical, UNIQUE_COLOR_SENTINEL)

    return PaletteReport(identical, len(seen))


def decide_color_mode(exceeds_capacity: bool, maintain_paletted: bool) -> ColorMode:
    if exceeds_capacity and not maintain_paletted:
        return ColorMode.TRUE_COLOR

    return ColorMode.PALETTED


def color_distance(a: Color, b: Color) -> int:
    """
    Squared euclidean distance over all four RGBA channels.
    """
    return sum((x - y) ** 2 for x, y in zip(a, b))


def nearest_color_index(palette: Palette, color: Color) -> int:
    """
    Index of the palette entry closest to color. Ties go to the lowest index.
    """
    best_index = 0
    best_distance = None

    for i, candidate in enumerate(palette):
        distance = color_distance(candidate, color)

        if best_distance is None or distance < best_distance:
            best_index = i
            best_distance = distance

            if distance == 0:
                break

    return best_index


def consolidate_palettes(frames: t.Sequence[IndexedFrame]) -> ConsolidationReport:
    """
    Merge the palettes of all frames into the first frame's palette, in place.

    The first frame's palette list becomes the primary palette. Colors of later frames are matched exactly against
    it, appended while there is room, and otherwise mapped to the nearest existing entry. Every later frame then has
    its pixels remapped and its palette replaced by the primary palette object.
    """
    primary = frames[0].palette
    positions: t.Dict[Color, int] = {}

    for i, color in enumerate(primary):
        positions.setdefault(color, i)

    substituted = 0

    for frame in frames[1:]:
        if frame.palette is primary:
            continue

        # indices with no palette entry keep their value
        table = bytearray(range(MAX_PALETTE_SIZE))

        for i, color in enumerate(frame.palette):
            if color in positions:
                table[i] = positions[color]
            elif len(primary) < MAX_PALETTE_SIZE:
                positions[color] = len(primary)
                table[i] = len(primary)
                primary.append(color)
            else:
                table[i] = nearest_color_index(primary, color)
                substituted += 1

        frame.indices = frame.indices.translate(table)
        frame.palette = primary

    return ConsolidationReport(primary, substituted)


def upgrade_to_truecolor(frames: t.Sequence[RasterFrame]) -> t.List[TrueColorFrame]:
    """
    Resolve every frame through its own palette. Frames are independent of each other.
    """
    return [frame.to_truecolor() for frame in frames]


def resolve_color_space(frames: t.Sequence[RasterFrame], maintain_paletted: bool = False) -> ColorSpaceResult:
    """
    Pick the output color mode for a frame sequence and bring every frame into it.

    Sequences with any true-color frame are upgraded as a whole. Fully indexed sequences are analyzed, then either
    consolidated onto one palette or upgraded.
    """
    frames = list(frames)

    if not all(isinstance(frame, IndexedFrame) for frame in frames):
        return ColorSpaceResult(upgrade_to_truecolor(frames), ColorMode.TRUE_COLOR, 0)

    report = analyze_palettes(frames)
    mode = decide_color_mode(report.unique_color_count > MAX_PALETTE_SIZE, maintain_paletted)

    if mode is ColorMode.TRUE_COLOR:
        return ColorSpaceResult(upgrade_to_truecolor(frames), mode, 0)

    substituted = 0
    if not report.identical_palettes:
        substituted = consolidate_palettes(frames).substituted

    return ColorSpaceResult(frames, mode, substituted)
