"""
In-memory raster frames. A frame is either indexed (palette + one index byte per pixel) or true-color (RGBA bytes).

Both variants expose the same pixel access, and convert explicitly into each other and into Pillow images.
"""

import typing as t

from PIL import Image

from .constants import MAX_PALETTE_SIZE

__all__ = (
    "Color",
    "Palette",
    "TRANSPARENT",
    "RasterFrame",
    "IndexedFrame",
    "TrueColorFrame",
    "raster_from_image",
)

# An RGBA color, each channel 0-255.
Color = t.Tuple[int, int, int, int]

# Palettes are ordered, the position of a color is its index.
Palette = t.List[Color]

TRANSPARENT: Color = (0, 0, 0, 0)


class RasterFrame:
    """
    Common interface of the two raster variants.
    """
    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height

    @property
    def size(self) -> t.Tuple[int, int]:
        return self.width, self.height

    def pixel(self, x: int, y: int) -> Color:
        raise NotImplementedError

    def to_truecolor(self) -> "TrueColorFrame":
        raise NotImplementedError

    def to_image(self) -> Image.Image:
        raise NotImplementedError

    def _check_bounds(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            msg = "pixel ({}, {}) outside {}x{} frame"
            raise IndexError(msg.format(x, y, self.width, self.height))


class IndexedFrame(RasterFrame):
    """
    A frame whose pixels are indices into a palette of at most 256 colors.

    The palette is held by reference. After palette consolidation, several frames hold the same list.
    """
    def __init__(self, width: int, height: int, palette: Palette, indices: t.Union[bytes, bytearray]):
        super().__init__(width, height)

        if len(indices) != width * height:
            msg = "expected {} pixel indices for a {}x{} frame, got {}"
            raise ValueError(msg.format(width * height, width, height, len(indices)))

        if len(palette) > MAX_PALETTE_SIZE:
            raise ValueError("palette has {} entries, limit is {}".format(len(palette), MAX_PALETTE_SIZE))

        self.palette = palette
        self.indices = bytearray(indices)

    def __repr__(self) -> str:
        return "IndexedFrame({}x{}, {} colors)".format(self.width, self.height, len(self.palette))

    def pixel(self, x: int, y: int) -> Color:
        self._check_bounds(x, y)
        index = self.indices[y * self.width + x]

        if index < len(self.palette):
            return self.palette[index]

        return TRANSPARENT

    def to_truecolor(self) -> "TrueColorFrame":
        """
        Resolve every index through this frame's own palette. Indices past the end of the palette become transparent.
        """
        lookup = [bytes(color) for color in self.palette]
        lookup.extend([bytes(TRANSPARENT)] * (MAX_PALETTE_SIZE - len(lookup)))

        pixels = b"".join([lookup[index] for index in self.indices])
        return TrueColorFrame(self.width, self.height, pixels)

    def deduplicated(self) -> "IndexedFrame":
        """
        Return a copy where repeated palette entries are collapsed onto their first occurrence.
        """
        positions: t.Dict[Color, int] = {}
        palette: Palette = []
        table = bytearray(range(MAX_PALETTE_SIZE))

        for i, color in enumerate(self.palette):
            if color not in positions:
                positions[color] = len(palette)
                palette.append(color)

            table[i] = positions[color]

        return IndexedFrame(self.width, self.height, palette, self.indices.translate(table))

    def expanded(self, width: int, height: int, x: int, y: int, fill_index: int) -> "IndexedFrame":
        """
        Return a copy of this frame placed at (x, y) on a larger width x height canvas, padded with fill_index.
        """
        if x < 0 or y < 0 or x + self.width > width or y + self.height > height:
            msg = "{}x{} frame at ({}, {}) does not fit a {}x{} canvas"
            raise ValueError(msg.format(self.width, self.height, x, y, width, height))

        indices = bytearray([fill_index]) * (width * height)

        for row in range(self.height):
            start = (y + row) * width + x
            src = row * self.width
            indices[start:start + self.width] = self.indices[src:src + self.width]

        return IndexedFrame(width, height, self.palette, indices)

    def to_image(self) -> Image.Image:
        image = Image.frombytes("P", self.size, bytes(self.indices))

        flat: t.List[int] = []
        for color in self.palette:
            flat.extend(color)

        if flat:
            image.putpalette(flat, "RGBA")

        return image

    @classmethod
    def from_image(cls, image: Image.Image) -> "IndexedFrame":
        """
        Build an indexed frame from a Pillow image in mode P. Transparency stored in image.info is folded into the
        palette's alpha channel. Writers often pad the palette to 256 entries, so repeated colors are collapsed.
        """
        if image.mode != "P":
            raise ValueError("expected a P mode image, got {}".format(image.mode))

        if image.palette is not None and image.palette.mode == "RGBA":
            rgba = image.getpalette("RGBA") or []
            palette = [tuple(rgba[i:i + 4]) for i in range(0, len(rgba) - 3, 4)]
            return cls(image.width, image.height, palette, image.tobytes()).deduplicated()

        rgb = image.getpalette("RGB") or []
        count = len(rgb) // 3

        transparency = image.info.get("transparency")
        alphas = [255] * count

        if isinstance(transparency, int):
            if transparency < count:
                alphas[transparency] = 0
        elif isinstance(transparency, bytes):
            for i, alpha in enumerate(transparency[:count]):
                alphas[i] = alpha

        palette = [(rgb[i * 3], rgb[i * 3 + 1], rgb[i * 3 + 2], alphas[i]) for i in range(count)]
        return cls(image.width, image.height, palette, image.tobytes()).deduplicated()


class TrueColorFrame(RasterFrame):
    """
    A frame storing RGBA bytes, row-major, 4 bytes per pixel.
    """
    def __init__(self, width: int, height: int, pixels: bytes):
        super().__init__(width, height)

        if len(pixels) != width * height * 4:
            msg = "expected {} bytes of RGBA data for a {}x{} frame, got {}"
            raise ValueError(msg.format(width * height * 4, width, height, len(pixels)))

        self.pixels = bytes(pixels)

    def __repr__(self) -> str:
        return "TrueColorFrame({}x{})".format(self.width, self.height)

    def pixel(self, x: int, y: int) -> Color:
        self._check_bounds(x, y)
        offset = (y * self.width + x) * 4
        r, g, b, a = self.pixels[offset:offset + 4]
        return r, g, b, a

    def to_truecolor(self) -> "TrueColorFrame":
        return self

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", self.size, self.pixels)

    @classmethod
    def from_image(cls, image: Image.Image) -> "TrueColorFrame":
        if image.mode != "RGBA":
            image = image.convert("RGBA")

        return cls(image.width, image.height, image.tobytes())


def raster_from_image(image: Image.Image) -> RasterFrame:
    """
    Convert a Pillow image into the matching raster variant. Paletted images stay indexed.
    """
    if image.mode == "P":
        return IndexedFrame.from_image(image)

    return TrueColorFrame.from_image(image)
