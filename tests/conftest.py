import struct
import typing as t

import pytest

from apngr import IndexedFrame

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
WHITE = (255, 255, 255, 255)


class GifFrame(t.NamedTuple):
    """
    One image of a GIF written by write_gif.
    """
    width: int
    height: int
    indices: t.Sequence[int]
    colortable: t.Optional[t.Sequence[t.Tuple[int, int, int]]] = None
    left: int = 0
    top: int = 0
    delay: int = 0
    disposal: int = 0
    transparent: t.Optional[int] = None
    interlaced: bool = False


def _table_exponent(num_colors: int) -> int:
    exponent = 0
    while 2 ** (exponent + 1) < num_colors:
        exponent += 1
    return exponent


def _table_bytes(table, exponent: int) -> bytes:
    out = bytearray()
    for r, g, b in table:
        out += bytes([r, g, b])
    out += bytes(3 * (2 ** (exponent + 1) - len(table)))
    return bytes(out)


def lzw_pack(indices: t.Sequence[int], min_code_size: int) -> bytes:
    """
    Encode indices as GIF LZW data without any compression: a clear code is sent before the code table grows,
    so every code keeps min_code_size + 1 bits.
    """
    clear_code = 1 << min_code_size
    end_code = clear_code + 1
    code_size = min_code_size + 1
    run_limit = (1 << min_code_size) - 2

    codes = [clear_code]
    run = 0
    for index in indices:
        if run == run_limit:
            codes.append(clear_code)
            run = 0
        codes.append(index)
        run += 1
    codes.append(end_code)

    out = bytearray()
    buffer = 0
    count = 0
    for code in codes:
        buffer |= code << count
        count += code_size
        while count >= 8:
            out.append(buffer & 0xFF)
            buffer >>= 8
            count -= 8
    if count:
        out.append(buffer & 0xFF)

    return bytes(out)


def _interlace_rows(indices, width: int, height: int) -> t.List[int]:
    rows = [list(indices[y * width:(y + 1) * width]) for y in range(height)]
    out = []
    for start, step in ((0, 8), (4, 8), (2, 4), (1, 2)):
        for y in range(start, height, step):
            out.extend(rows[y])
    return out


def write_gif(
    path,
    width: int,
    height: int,
    frames: t.Sequence[GifFrame],
    global_table=None,
    loop: t.Optional[int] = None,
    extra_blocks: bytes = b""
) -> str:
    out = bytearray(b"GIF89a")

    packed = 0
    exponent = 0
    if global_table is not None:
        exponent = _table_exponent(len(global_table))
        packed = 0x80 | (7 << 4) | exponent
    out += struct.pack("<HHBBB", width, height, packed, 0, 0)

    if global_table is not None:
        out += _table_bytes(global_table, exponent)

    if loop is not None:
        out += b"\x21\xff\x0bNETSCAPE2.0\x03\x01" + struct.pack("<H", loop) + b"\x00"

    out += extra_blocks

    for frame in frames:
        gce_packed = (frame.disposal << 2) | (1 if frame.transparent is not None else 0)
        out += struct.pack("<BBBBHBB", 0x21, 0xF9, 4, gce_packed, frame.delay, frame.transparent or 0, 0)

        table_size = len(global_table) if global_table is not None else 2
        image_packed = 0
        if frame.colortable is not None:
            local_exponent = _table_exponent(len(frame.colortable))
            image_packed = 0x80 | local_exponent
            table_size = 2 ** (local_exponent + 1)
        if frame.interlaced:
            image_packed |= 0x40

        out += struct.pack("<BHHHHB", 0x2C, frame.left, frame.top, frame.width, frame.height, image_packed)

        if frame.colortable is not None:
            out += _table_bytes(frame.colortable, local_exponent)

        indices = frame.indices
        if frame.interlaced:
            indices = _interlace_rows(indices, frame.width, frame.height)

        min_code_size = max(2, _table_exponent(max(table_size, max(indices) + 1)) + 1)
        data = lzw_pack(indices, min_code_size)

        out.append(min_code_size)
        for i in range(0, len(data), 255):
            block = data[i:i + 255]
            out.append(len(block))
            out += block
        out.append(0)

    out.append(0x3B)

    with open(str(path), "wb") as f:
        f.write(bytes(out))

    return str(path)


def resolve_all(frame: IndexedFrame) -> t.List[t.Tuple[int, int, int, int]]:
    return [frame.pixel(x, y) for y in range(frame.height) for x in range(frame.width)]


@pytest.fixture
def three_frame_palettes():
    """
    Frames whose palettes are [red, green], [red, blue], [green, blue].
    """
    return [
        IndexedFrame(2, 1, [RED, GREEN], [0, 1]),
        IndexedFrame(2, 1, [RED, BLUE], [1, 0]),
        IndexedFrame(2, 2, [GREEN, BLUE], [0, 1, 1, 0]),
    ]


@pytest.fixture
def simple_gif(tmp_path):
    """
    A 4x4 GIF with a global table and three frames, the last one a local-table sub rectangle.
    """
    table = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 255)]
    frames = [
        GifFrame(4, 4, [0] * 8 + [1] * 8, delay=5, disposal=1),
        GifFrame(4, 4, [2, 3] * 8, delay=7, disposal=2, transparent=3),
        GifFrame(2, 2, [0, 1, 1, 0], colortable=[(10, 20, 30), (40, 50, 60)], left=1, top=2, delay=12,
                 disposal=3),
    ]
    return write_gif(tmp_path / "simple.gif", 4, 4, frames, global_table=table, loop=0)
