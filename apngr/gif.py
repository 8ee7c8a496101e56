"""
GIF reader. Walks the blocks of a GIF87a or GIF89a file and decodes every image into palette indices, keeping the
animation controls (delay, disposal, transparency, loop count) apngr needs to build an APNG.

Format reference: https://www.w3.org/Graphics/GIF/spec-gif89a.txt
"""

from enum import Enum
from mmaputils import MmapCursor
import os
import typing as t

from .constants import DisposalMethod, GifVersion
from .errors import DecodeError
from .frame import IndexedFrame, Palette

__all__ = (
    "Colortable",
    "Gif",
    "GifImage",
    "GifStreamException",
    "LogicalScreenDescriptor",
    "ImageDescriptor",
    "GraphicControlExtension",
    "lzw_decode",
    "deinterlace",
)

# RGB triples as stored in the file.
Colortable = t.Sequence[t.Tuple[int, int, int]]

# Byte values that start a block.
EXT_INTRODUCER = 0x21
IMAGE_SEPARATOR = 0x2C
TRAILER_LABEL = 0x3B

# Second byte of an extension block.
EXT_GRAPHIC_CONTROL_LABEL = 0xF9
EXT_COMMENT_LABEL = 0xFE
EXT_PLAINTEXT_LABEL = 0x01
EXT_APPLICATION_LABEL = 0xFF

# Application identifiers carrying a loop count.
LOOPING_APPLICATIONS = (b"NETSCAPE2.0", b"ANIMEXTS1.0")

GIF_VERSIONS = {
    b"87a": GifVersion.GIF87a,
    b"89a": GifVersion.GIF89a,
}

# LZW codes never grow past 12 bits.
MAX_LZW_BITS = 12

# Interlaced images store rows in four passes: (first row, row step).
INTERLACE_PASSES = ((0, 8), (4, 8), (2, 4), (1, 2))


class GifStreamException(DecodeError):
    """
    Raised when a GIF file can't be parsed.
    """
    pass


class LogicalScreenDescriptor:
    """
    Canvas size, background color and global color table flags. Every GIF starts with one, right after the header.
    """
    def __init__(self):
        self.width = 0
        self.height = 0
        self.colortable_exists = False
        self.colortable_is_sorted = False
        self.colortable_size = 0
        self.color_resolution = 0
        self.background_color_index = 0
        self.pixel_aspect_ratio = 0

    def num_colors(self) -> int:
        return 1 << (self.colortable_size + 1)


class ImageDescriptor:
    """
    Placement and size of one image, whether it is interlaced, and its local color table flags.
    """
    def __init__(self):
        self.leftpos = 0
        self.toppos = 0
        self.width = 0
        self.height = 0
        self.interlaced = False
        self.colortable_exists = False
        self.colortable_is_sorted = False
        self.colortable_size = 0

    def num_colors(self) -> int:
        return 1 << (self.colortable_size + 1)


class GraphicControlExtension:
    """
    Per-image animation controls: delay, disposal and the transparent color index. Only found in GIF89a files, and
    optional even there.
    """
    def __init__(self):
        self.disposal_method = DisposalMethod.NONE
        # raw 3-bit field, kept because values 4-7 have no DisposalMethod
        self.disposal_value = 0
        self.user_input_flag = False
        self.transparent_flag = False
        self.transparent_color = 0
        # hundredths of a second
        self.delay = 0


class _BlockType(Enum):
    IMAGE_DATA = 0
    EXT_GRAPHIC_CONTROL = 1
    EXT_COMMENT = 2
    EXT_PLAINTEXT = 3
    EXT_APPLICATION = 4
    EXT_UNKNOWN = 5
    TRAILER = 6


EXTENSION_BLOCKS = {
    EXT_GRAPHIC_CONTROL_LABEL: _BlockType.EXT_GRAPHIC_CONTROL,
    EXT_COMMENT_LABEL: _BlockType.EXT_COMMENT,
    EXT_PLAINTEXT_LABEL: _BlockType.EXT_PLAINTEXT,
    EXT_APPLICATION_LABEL: _BlockType.EXT_APPLICATION,
}


def lzw_decode(min_code_size: int, data: bytes, pixel_count: int) -> bytearray:
    """
    Decode GIF LZW data into at most pixel_count palette indices.

    Codes are packed least significant bit first. The code size starts at min_code_size + 1 and grows by one bit
    every time the table fills the current size, up to 12 bits. A clear code resets the table, an end code stops.
    """
    if not 1 <= min_code_size <= 11:
        raise GifStreamException("Invalid LZW minimum code size {}".format(min_code_size))

    clear_code = 1 << min_code_size
    end_code = clear_code + 1
    roots = [bytes([i]) for i in range(clear_code)] + [b"", b""]

    table = list(roots)
    code_size = min_code_size + 1
    prev: t.Optional[bytes] = None
    out = bytearray()

    bit_buffer = 0
    bit_count = 0

    for byte in data:
        bit_buffer |= byte << bit_count
        bit_count += 8

        while bit_count >= code_size:
            code = bit_buffer & ((1 << code_size) - 1)
            bit_buffer >>= code_size
            bit_count -= code_size

            if code == clear_code:
                table = list(roots)
                code_size = min_code_size + 1
                prev = None
                continue

            if code == end_code:
                return out[:pixel_count]

            if code < len(table):
                entry = table[code]
            elif code == len(table) and prev is not None:
                entry = prev + prev[:1]
            else:
                raise GifStreamException("Invalid LZW code {}".format(code))

            out += entry

            if prev is not None and len(table) < (1 << MAX_LZW_BITS):
                table.append(prev + entry[:1])

                if len(table) == (1 << code_size) and code_size < MAX_LZW_BITS:
                    code_size += 1

            prev = entry

            if len(out) >= pixel_count:
                return out[:pixel_count]

    return out


def deinterlace(indices: bytearray, width: int, height: int) -> bytearray:
    """
    Reorder the rows of an interlaced image into top-to-bottom order.
    """
    out = bytearray(len(indices))
    row = 0

    for start, step in INTERLACE_PASSES:
        for y in range(start, height, step):
            out[y * width:(y + 1) * width] = indices[row * width:(row + 1) * width]
            row += 1

    return out


class _GifStream:
    """
    Reads a GIF file block by block over a memory map. Every read is bounds checked, so truncated files raise
    GifStreamException instead of returning short data.
    """
    def __init__(self, path: str):
        # mmap refuses empty files
        if os.path.getsize(path) == 0:
            raise GifStreamException("{} is empty".format(path))

        self.stream = MmapCursor(path, byteorder="little")
        self.size = len(self.stream.m)

    def __enter__(self) -> "_GifStream":
        return self

    def __exit__(self, *exc_info) -> bool:
        self.close()
        return False

    def require(self, size: int) -> None:
        if self.stream.position + size > self.size:
            msg = "Unexpected end of file at offset {}"
            raise GifStreamException(msg.format(self.stream.position))

    def next_byte(self) -> int:
        self.require(1)
        return self.stream.next_byte()

    def next_uint16(self) -> int:
        self.require(2)
        return self.stream.next_int(2, signed=False)

    def next(self, size: int) -> bytes:
        self.require(size)
        return self.stream.next(size)

    def consume_header(self) -> GifVersion:
        signature = self.next(6)

        if signature[:3] != b"GIF":
            raise GifStreamException("Bad signature {!r}".format(signature[:3]))

        version = GIF_VERSIONS.get(signature[3:])
        if version is None:
            raise GifStreamException("Unsupported GIF version {!r}".format(signature[3:]))

        return version

    def consume_screen_descriptor(self) -> LogicalScreenDescriptor:
        desc = LogicalScreenDescriptor()

        desc.width = self.next_uint16()
        desc.height = self.next_uint16()
        flags = self.next_byte()
        desc.background_color_index = self.next_byte()
        desc.pixel_aspect_ratio = self.next_byte()

        # global table flag, color resolution, sort flag, table size
        desc.colortable_exists = bool(flags & 0x80)
        desc.color_resolution = (flags >> 4) & 0x7
        desc.colortable_is_sorted = bool(flags & 0x08)
        desc.colortable_size = flags & 0x7

        return desc

    def consume_color_table(self, num_colors: int) -> Colortable:
        data = self.next(num_colors * 3)
        return [(data[i], data[i + 1], data[i + 2]) for i in range(0, len(data), 3)]

    def consume_image_descriptor(self) -> ImageDescriptor:
        """
        Read an image descriptor. A local color table, if flagged, follows it and is read separately.
        """
        desc = ImageDescriptor()

        separator = self.next_byte()
        if separator != IMAGE_SEPARATOR:
            raise GifStreamException("Expected image separator, got {:02X}".format(separator))

        desc.leftpos = self.next_uint16()
        desc.toppos = self.next_uint16()
        desc.width = self.next_uint16()
        desc.height = self.next_uint16()
        flags = self.next_byte()

        # local table flag, interlace flag, sort flag, table size
        desc.colortable_exists = bool(flags & 0x80)
        desc.interlaced = bool(flags & 0x40)
        desc.colortable_is_sorted = bool(flags & 0x20)
        desc.colortable_size = flags & 0x7

        return desc

    def check_blocktype(self) -> _BlockType:
        """
        Peek at the next block without consuming it.
        """
        self.require(1)
        peek = self.stream.read(2)

        if peek[0] == TRAILER_LABEL:
            return _BlockType.TRAILER

        if peek[0] == IMAGE_SEPARATOR:
            return _BlockType.IMAGE_DATA

        if peek[0] == EXT_INTRODUCER:
            if len(peek) < 2:
                raise GifStreamException("File ends inside an extension introducer")

            return EXTENSION_BLOCKS.get(peek[1], _BlockType.EXT_UNKNOWN)

        msg = "Unknown block starting with {:02X} at offset {}"
        raise GifStreamException(msg.format(peek[0], self.stream.position))

    def consume_data(self) -> bytes:
        """
        Read a chain of data sub-blocks (a length byte, then up to 255 bytes) up to the empty terminator block, and
        return the payload joined together.
        """
        blocks = []

        size = self.next_byte()
        while size:
            blocks.append(self.next(size))
            size = self.next_byte()

        return b"".join(blocks)

    def consume_image_data(self, width: int, height: int) -> bytearray:
        """
        Decode the LZW data after an image descriptor. Rows come back in file order, so interlaced images still need
        deinterlace(). Short data is padded with index 0.
        """
        min_code_size = self.next_byte()
        data = self.consume_data()

        pixel_count = width * height
        indices = lzw_decode(min_code_size, data, pixel_count)

        if len(indices) < pixel_count:
            indices.extend(bytes(pixel_count - len(indices)))

        return indices

    def skip_extension(self) -> int:
        """
        Skip a comment, plain text or unknown extension. Returns the payload size skipped.
        """
        introducer = self.next_byte()
        if introducer != EXT_INTRODUCER:
            raise GifStreamException("Expected extension introducer, got {:02X}".format(introducer))

        self.next_byte()  # label
        return len(self.consume_data())

    def consume_application_extension(self) -> t.Optional[int]:
        """
        Read an application extension. Returns the loop count for NETSCAPE2.0 style looping blocks, None for any
        other application.
        """
        self.next(2)  # introducer, label

        identifier = self.next(self.next_byte())
        data = self.consume_data()

        if identifier in LOOPING_APPLICATIONS and len(data) >= 3 and data[0] == 1:
            return int.from_bytes(data[1:3], byteorder="little")

        return None

    def consume_graphic_control_extension(self) -> GraphicControlExtension:
        ext = GraphicControlExtension()

        if self.next(2) != bytes([EXT_INTRODUCER, EXT_GRAPHIC_CONTROL_LABEL]):
            raise GifStreamException("Expected a graphic control extension")

        block_size = self.next_byte()
        if block_size != 4:
            raise GifStreamException("Bad graphic control extension block size {}".format(block_size))

        flags = self.next_byte()
        ext.delay = self.next_uint16()
        ext.transparent_color = self.next_byte()
        self.next_byte()  # terminator

        ext.disposal_value = (flags >> 2) & 0x7
        ext.user_input_flag = bool(flags & 0x02)
        ext.transparent_flag = bool(flags & 0x01)

        # values 4-7 are reserved and stay DisposalMethod.NONE
        if ext.disposal_value <= DisposalMethod.RESTORE_PREVIOUS.value:
            ext.disposal_method = DisposalMethod(ext.disposal_value)

        return ext

    def close(self) -> None:
        self.stream.close()


class Gif:
    """
    A parsed GIF: version, logical screen, global color table, loop count and every image, decoded.

    Args:
        path: The GIF file to read. It is parsed, and the file closed again, before the constructor returns.
    """
    def __init__(self, path: str):
        self.path = path
        self.version = GifVersion.GIF89a
        self.screen: t.Optional[LogicalScreenDescriptor] = None
        self.colortable: t.Optional[Colortable] = None

        # NETSCAPE2.0 loop count. None if the file has no looping block.
        self.loop_count: t.Optional[int] = None

        self.images: t.List[GifImage] = []

        self.__parse()

    def __parse(self) -> None:
        with _GifStream(self.path) as stream:
            self.version = stream.consume_header()
            self.screen = stream.consume_screen_descriptor()

            if self.screen.colortable_exists:
                self.colortable = stream.consume_color_table(self.screen.num_colors())
            else:
                print("warn: {}: no global color table".format(self.path))

            # a graphic control block applies to the next image only
            pending_control = None
            images = []

            while True:
                blocktype = stream.check_blocktype()

                if blocktype == _BlockType.TRAILER:
                    break
                elif blocktype == _BlockType.IMAGE_DATA:
                    images.append(GifImage(self, stream, pending_control))
                    pending_control = None
                elif blocktype == _BlockType.EXT_GRAPHIC_CONTROL:
                    if pending_control is not None:
                        raise GifStreamException("Two graphic control blocks before one image")

                    pending_control = stream.consume_graphic_control_extension()
                elif blocktype == _BlockType.EXT_APPLICATION:
                    loop_count = stream.consume_application_extension()
                    if loop_count is not None:
                        self.loop_count = loop_count
                else:
                    stream.skip_extension()

        if not images:
            raise GifStreamException("{} contains no images".format(self.path))

        self.images = images

    @property
    def screen_size(self) -> t.Tuple[int, int]:
        return self.screen.width, self.screen.height


class GifImage:
    """
    One image of a GIF with its pixel indices in top-to-bottom row order.
    """
    def __init__(self, gif: Gif, stream: _GifStream, graphic_control: t.Optional[GraphicControlExtension] = None):
        self.gif = gif
        self.graphic_control = graphic_control

        self.descriptor = stream.consume_image_descriptor()

        self.colortable: t.Optional[Colortable] = None
        if self.descriptor.colortable_exists:
            self.colortable = stream.consume_color_table(self.descriptor.num_colors())

        indices = stream.consume_image_data(self.descriptor.width, self.descriptor.height)

        if self.descriptor.interlaced:
            indices = deinterlace(indices, self.descriptor.width, self.descriptor.height)

        self.indices = indices

    @property
    def offset(self) -> t.Tuple[int, int]:
        return self.descriptor.leftpos, self.descriptor.toppos

    @property
    def size(self) -> t.Tuple[int, int]:
        return self.descriptor.width, self.descriptor.height

    @property
    def transparent_index(self) -> t.Optional[int]:
        if self.graphic_control and self.graphic_control.transparent_flag:
            return self.graphic_control.transparent_color

        return None

    def active_colortable(self) -> Colortable:
        """
        The local color table if present, otherwise the global one.
        """
        table = self.colortable if self.colortable is not None else self.gif.colortable

        if table is None:
            raise GifStreamException("{}: image has neither a local nor a global color table".format(self.gif.path))

        return table

    def palette(self) -> Palette:
        """
        The color table in effect as RGBA colors. The transparent index, if any, gets alpha 0.
        """
        transparent = self.transparent_index

        return [(r, g, b, 0 if i == transparent else 255) for i, (r, g, b) in enumerate(self.active_colortable())]

    def to_raster(self) -> IndexedFrame:
        """
        Build an indexed frame from this image, with duplicate palette entries collapsed.
        """
        palette = self.palette()

        if self.indices and max(self.indices) >= len(palette):
            msg = "{}: pixel index {} outside a {} color palette"
            raise GifStreamException(msg.format(self.gif.path, max(self.indices), len(palette)))

        width, height = self.size
        return IndexedFrame(width, height, palette, self.indices).deduplicated()
