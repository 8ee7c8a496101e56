"""
APNG reader and writer.

An APNG is a PNG whose chunk stream carries extra animation chunks: acTL (frame count and loop count), fcTL (one
per frame: size, offset, delay, dispose and blend operations) and fdAT (image data of every frame after the first).
This module only handles the chunk stream. The pixel data of each frame is compressed and decompressed by Pillow's
PNG codec.

Specification: https://wiki.mozilla.org/APNG_Specification
"""

import io
import os
from mmaputils import MmapCursor
import struct
import typing as t
import zlib

from PIL import Image

from .animation import AnimationFrame, AnimationSequence
from .config import check_delay
from .constants import BlendOp, DisposeOp
from .errors import ConfigurationError, DecodeError, EncodeError
from .frame import IndexedFrame, Palette, RasterFrame, TrueColorFrame, raster_from_image

__all__ = (
    "ApngStreamException",
    "FrameControl",
    "make_chunk",
    "iter_chunks",
    "decode_apng",
    "encode_apng",
)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# IHDR color types used when writing.
COLOR_TYPE_PALETTE = 3
COLOR_TYPE_RGBA = 6

# Chunks copied into every rebuilt frame PNG when decoding.
PALETTE_CHUNKS = (b"PLTE", b"tRNS")

IHDR_FORMAT = ">IIBBBBB"
ACTL_FORMAT = ">II"
FCTL_FORMAT = ">IIIIIHHBB"
SEQUENCE_FORMAT = ">I"


class ApngStreamException(DecodeError):
    """
    Raised on errors parsing an APNG file.
    """
    pass


class FrameControl:
    """
    Model of an fcTL chunk.
    """
    def __init__(self):
        self.sequence_number = 0
        self.width = 0
        self.height = 0
        self.x_offset = 0
        self.y_offset = 0
        self.delay_numerator = 0
        self.delay_denominator = 0
        self.dispose_op = DisposeOp.NONE
        self.blend_op = BlendOp.SOURCE

    @classmethod
    def from_bytes(cls, data: bytes) -> "FrameControl":
        if len(data) != struct.calcsize(FCTL_FORMAT):
            raise ApngStreamException("Bad fcTL chunk length {}".format(len(data)))

        control = cls()
        (
            control.sequence_number,
            control.width,
            control.height,
            control.x_offset,
            control.y_offset,
            control.delay_numerator,
            control.delay_denominator,
            dispose,
            blend
        ) = struct.unpack(FCTL_FORMAT, data)

        try:
            control.dispose_op = DisposeOp(dispose)
            control.blend_op = BlendOp(blend)
        except ValueError as e:
            raise ApngStreamException("Invalid fcTL chunk: {}".format(e)) from e

        return control

    @classmethod
    def from_frame(cls, frame: AnimationFrame, sequence_number: int) -> "FrameControl":
        control = cls()
        control.sequence_number = sequence_number
        control.width, control.height = frame.image.size
        control.x_offset = frame.x_offset
        control.y_offset = frame.y_offset
        control.delay_numerator = frame.delay_numerator
        control.delay_denominator = frame.delay_denominator
        control.dispose_op = frame.dispose_op
        control.blend_op = frame.blend_op

        return control

    def to_bytes(self) -> bytes:
        return struct.pack(
            FCTL_FORMAT,
            self.sequence_number,
            self.width,
            self.height,
            self.x_offset,
            self.y_offset,
            self.delay_numerator,
            self.delay_denominator,
            self.dispose_op.value,
            self.blend_op.value)


def make_chunk(chunk_type: bytes, data: bytes) -> bytes:
    """
    Serialize a chunk: length, type, data, CRC of type and data.
    """
    crc = zlib.crc32(chunk_type + data)
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def iter_chunks(png: bytes) -> t.Iterator[t.Tuple[bytes, bytes]]:
    """
    Iterate over (type, data) of the chunks of an in-memory PNG. CRCs aren't checked.
    """
    if not png.startswith(PNG_SIGNATURE):
        raise ApngStreamException("Bad PNG signature")

    position = len(PNG_SIGNATURE)

    while position + 8 <= len(png):
        length, chunk_type = struct.unpack_from(">I4s", png, position)
        position += 8

        yield chunk_type, png[position:position + length]
        position += length + 4


class _ApngStream:
    """
    Internal utility class that streams along an APNG file chunk by chunk.
    """
    def __init__(self, path: str):
        if os.path.getsize(path) == 0:
            raise ApngStreamException("{} is empty".format(path))

        # png is big endian, which is also MmapCursor's default
        self.stream = MmapCursor(path)

        self.size = len(self.stream.m)

    def __enter__(self) -> "_ApngStream":
        return self

    def __exit__(self, *exc_info) -> bool:
        self.close()
        return False

    def require(self, size: int) -> None:
        if self.stream.position + size > self.size:
            msg = "Unexpected end of file at offset {}"
            raise ApngStreamException(msg.format(self.stream.position))

    def consume_signature(self) -> None:
        self.require(len(PNG_SIGNATURE))
        signature = self.stream.next(len(PNG_SIGNATURE))

        if signature != PNG_SIGNATURE:
            raise ApngStreamException("Bad signature {!r}".format(signature))

    def next_chunk(self) -> t.Tuple[bytes, bytes]:
        """
        Consume one chunk and return its type and data. The CRC is verified.
        """
        self.require(8)
        length = self.stream.next_int(4, signed=False)
        chunk_type = self.stream.next(4)

        self.require(length + 4)
        data = self.stream.next(length)
        crc = self.stream.next_int(4, signed=False)

        if zlib.crc32(chunk_type + data) != crc:
            msg = "CRC mismatch in {} chunk at offset {}"
            raise ApngStreamException(msg.format(chunk_type.decode("ascii", "replace"), self.stream.position))

        return chunk_type, data

    def close(self):
        self.stream.close()


class _PendingFrame:
    """
    Frame collected from the chunk stream, not yet decoded. A frame without a control chunk is the default image.
    """
    def __init__(self, control: t.Optional[FrameControl]):
        self.control = control
        self.data: t.List[bytes] = []


def _palette_from_chunks(chunks: t.Dict[bytes, bytes]) -> Palette:
    plte = chunks.get(b"PLTE", b"")
    trns = chunks.get(b"tRNS", b"")

    palette = []
    for i in range(len(plte) // 3):
        alpha = trns[i] if i < len(trns) else 255
        palette.append((plte[i * 3], plte[i * 3 + 1], plte[i * 3 + 2], alpha))

    return palette


def _decode_pixels(
    header: bytes,
    palette_chunks: t.Dict[bytes, bytes],
    palette: t.Optional[Palette],
    pending: _PendingFrame
) -> RasterFrame:
    """
    Rebuild a standalone PNG for one frame and decode it with Pillow. Paletted frames share the palette passed in.
    """
    if pending.control is not None:
        header = struct.pack(">II", pending.control.width, pending.control.height) + header[8:]

    png = [PNG_SIGNATURE, make_chunk(b"IHDR", header)]
    for chunk_type in PALETTE_CHUNKS:
        if chunk_type in palette_chunks:
            png.append(make_chunk(chunk_type, palette_chunks[chunk_type]))

    png.append(make_chunk(b"IDAT", b"".join(pending.data)))
    png.append(make_chunk(b"IEND", b""))

    try:
        with Image.open(io.BytesIO(b"".join(png))) as image:
            image.load()

            if palette is not None and image.mode == "P":
                return IndexedFrame(image.width, image.height, palette, image.tobytes())

            return raster_from_image(image)
    except (OSError, ValueError, zlib.error) as e:
        raise ApngStreamException("Cannot decode frame image data: {}".format(e)) from e


def decode_apng(path: str) -> AnimationSequence:
    """
    Read an APNG file into an AnimationSequence. A PNG without animation control decodes as a single frame.
    """
    header = None
    palette_chunks: t.Dict[bytes, bytes] = {}
    animation_control = None
    frames: t.List[_PendingFrame] = []
    current: t.Optional[_PendingFrame] = None
    idat: t.List[bytes] = []

    with _ApngStream(path) as stream:
        stream.consume_signature()

        while True:
            chunk_type, data = stream.next_chunk()

            if chunk_type == b"IEND":
                break
            elif chunk_type == b"IHDR":
                if len(data) != struct.calcsize(IHDR_FORMAT):
                    raise ApngStreamException("Bad IHDR chunk length {}".format(len(data)))
                header = data
            elif chunk_type in PALETTE_CHUNKS:
                palette_chunks[chunk_type] = data
            elif chunk_type == b"acTL":
                if len(data) != struct.calcsize(ACTL_FORMAT):
                    raise ApngStreamException("Bad acTL chunk length {}".format(len(data)))
                animation_control = struct.unpack(ACTL_FORMAT, data)
            elif chunk_type == b"fcTL":
                current = _PendingFrame(FrameControl.from_bytes(data))
                frames.append(current)
            elif chunk_type == b"IDAT":
                if current is None:
                    # image data before any fcTL: the default image
                    current = _PendingFrame(None)
                    frames.append(current)
                current.data.append(data)
                idat.append(data)
            elif chunk_type == b"fdAT":
                if current is None or current.control is None:
                    raise ApngStreamException("fdAT chunk without a preceding fcTL chunk")
                current.data.append(data[struct.calcsize(SEQUENCE_FORMAT):])

    if header is None:
        raise ApngStreamException("{}: missing IHDR chunk".format(path))

    if not frames:
        raise ApngStreamException("{}: no image data".format(path))

    if animation_control is None:
        # plain png: fcTL and fdAT are ignored, the IDAT chunks form the only frame
        frames = [_PendingFrame(None)]
        frames[0].data = idat

    palette = _palette_from_chunks(palette_chunks) if header[9] == COLOR_TYPE_PALETTE else None

    result = []
    for i, pending in enumerate(frames):
        if not pending.data:
            raise ApngStreamException("{}: frame {} has no image data".format(path, i))

        image = _decode_pixels(header, palette_chunks, palette, pending)
        control = pending.control

        if control is None:
            result.append(AnimationFrame(image, is_default=animation_control is not None))
            continue

        result.append(AnimationFrame(
            image,
            x_offset=control.x_offset,
            y_offset=control.y_offset,
            delay_numerator=control.delay_numerator,
            delay_denominator=control.delay_denominator or 100,
            dispose_op=control.dispose_op,
            blend_op=control.blend_op))

    loop_count = animation_control[1] if animation_control is not None else 0
    return AnimationSequence(result, loop_count=loop_count)


def _encode_pixels(image: RasterFrame, color_type: int) -> bytes:
    """
    Compress one frame's pixels with Pillow's PNG encoder and return the joined IDAT data.
    """
    buffer = io.BytesIO()

    if color_type == COLOR_TYPE_PALETTE:
        # force 8 bit indices so every frame matches the IHDR we write
        image.to_image().save(buffer, "PNG", bits=8)
    else:
        image.to_image().save(buffer, "PNG")

    header = b""
    data = []
    for chunk_type, chunk_data in iter_chunks(buffer.getvalue()):
        if chunk_type == b"IHDR":
            header = chunk_data
        elif chunk_type == b"IDAT":
            data.append(chunk_data)

    if header[8:10] != bytes([8, color_type]):
        raise EncodeError("Pillow wrote unexpected bit depth/color type {!r}".format(header[8:10]))

    return b"".join(data)


def _palette_chunks(palette: Palette) -> t.List[bytes]:
    plte = b"".join(bytes(color[:3]) for color in palette)
    chunks = [make_chunk(b"PLTE", plte)]

    alphas = bytes(color[3] for color in palette).rstrip(b"\xff")
    if alphas:
        chunks.append(make_chunk(b"tRNS", alphas))

    return chunks


def _check_sequence(sequence: AnimationSequence) -> int:
    """
    Make sure a sequence can be written as an APNG. Returns the IHDR color type to use.
    """
    images = [frame.image for frame in sequence]

    if all(isinstance(image, IndexedFrame) for image in images):
        palette = images[0].palette

        if not palette:
            raise EncodeError("indexed frames have an empty palette")

        if any(image.palette != palette for image in images[1:]):
            raise EncodeError("indexed frames must share one palette, consolidate them first")

        color_type = COLOR_TYPE_PALETTE
    elif all(isinstance(image, TrueColorFrame) for image in images):
        color_type = COLOR_TYPE_RGBA
    else:
        raise EncodeError("cannot mix indexed and true-color frames")

    if sequence.loop_length == 0:
        raise EncodeError("animation has no frames besides the default image")

    width, height = sequence.canvas_size
    first = sequence.frames[0]

    if first.x_offset != 0 or first.y_offset != 0 or first.image.size != (width, height):
        msg = "first frame must cover the whole {}x{} canvas at offset (0, 0)"
        raise EncodeError(msg.format(width, height))

    for i, frame in enumerate(sequence):
        if frame.x_offset < 0 or frame.y_offset < 0:
            raise EncodeError("frame {} has a negative offset".format(i))

        try:
            check_delay(frame.delay_numerator, frame.delay_denominator)
        except ConfigurationError as e:
            raise EncodeError("frame {}: {}".format(i, e)) from e

    return color_type


def encode_apng(sequence: AnimationSequence, path: str) -> None:
    """
    Write an AnimationSequence to path as an APNG.

    All frames must either be true-color, or indexed against one shared palette. The file is only created once every
    chunk has been built.
    """
    color_type = _check_sequence(sequence)
    width, height = sequence.canvas_size

    chunks = [
        make_chunk(b"IHDR", struct.pack(IHDR_FORMAT, width, height, 8, color_type, 0, 0, 0)),
        make_chunk(b"acTL", struct.pack(ACTL_FORMAT, sequence.loop_length, sequence.loop_count)),
    ]

    if color_type == COLOR_TYPE_PALETTE:
        chunks.extend(_palette_chunks(sequence.frames[0].image.palette))

    sequence_number = 0
    for i, frame in enumerate(sequence):
        data = _encode_pixels(frame.image, color_type)

        if frame.is_default:
            chunks.append(make_chunk(b"IDAT", data))
            continue

        control = FrameControl.from_frame(frame, sequence_number)
        chunks.append(make_chunk(b"fcTL", control.to_bytes()))
        sequence_number += 1

        if i == 0:
            chunks.append(make_chunk(b"IDAT", data))
        else:
            chunks.append(make_chunk(b"fdAT", struct.pack(SEQUENCE_FORMAT, sequence_number) + data))
            sequence_number += 1

    chunks.append(make_chunk(b"IEND", b""))

    with open(path, "wb") as f:
        f.write(PNG_SIGNATURE)
        for chunk in chunks:
            f.write(chunk)
