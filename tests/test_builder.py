import pytest
from PIL import Image

from apngr import (
    TRANSPARENT,
    BlendOp,
    ConfigurationError,
    DisposalMethod,
    DisposeOp,
    FrameDescriptor,
    Gif,
    IndexedFrame,
    Options,
    TrueColorFrame,
    build_from_gif,
    build_from_stills,
    build_still,
    dispose_op_for_gif,
    encode_apng,
    decode_apng,
    gif_loop_count,
)

from conftest import BLUE, GREEN, RED, GifFrame, resolve_all, write_gif


@pytest.mark.parametrize("disposal, expected", [
    (DisposalMethod.NONE, DisposeOp.BACKGROUND),
    (DisposalMethod.NO_DISPOSE, DisposeOp.NONE),
    (DisposalMethod.RESTORE_BACKGROUND, DisposeOp.BACKGROUND),
    (DisposalMethod.RESTORE_PREVIOUS, DisposeOp.PREVIOUS),
])
def test_dispose_op_for_gif(disposal, expected):
    assert dispose_op_for_gif(disposal) is expected


@pytest.mark.parametrize("loop_count, expected", [
    (None, 1),
    (0, 0),
    (1, 2),
    (65535, 65536),
])
def test_gif_loop_count(loop_count, expected):
    assert gif_loop_count(loop_count) == expected


def test_build_from_gif(simple_gif):
    sequence = build_from_gif(Gif(simple_gif), Options())

    assert len(sequence) == 3
    assert sequence.loop_count == 0
    assert sequence.canvas_size == (4, 4)

    offsets = [(frame.x_offset, frame.y_offset) for frame in sequence]
    assert offsets == [(0, 0), (0, 0), (1, 2)]

    assert [frame.delay_numerator for frame in sequence] == [5, 7, 12]
    assert all(frame.delay_denominator == 100 for frame in sequence)
    assert [frame.dispose_op for frame in sequence] == [DisposeOp.NONE, DisposeOp.BACKGROUND, DisposeOp.PREVIOUS]
    assert all(frame.blend_op is BlendOp.OVER for frame in sequence)

    palette = sequence.frames[0].image.palette
    assert all(frame.image.palette is palette for frame in sequence)
    assert sequence.frames[1].image.pixel(1, 0) == (255, 255, 255, 0)
    assert sequence.frames[2].image.pixel(1, 0) == (40, 50, 60, 255)


def test_build_from_gif_pads_first_frame(tmp_path):
    table = [(255, 0, 0), (0, 255, 0)]
    frames = [
        GifFrame(2, 2, [0, 1, 1, 0], left=1, top=1, delay=3),
        GifFrame(1, 1, [1], left=3, top=3, delay=3),
    ]
    path = write_gif(tmp_path / "padded.gif", 4, 4, frames, global_table=table)

    sequence = build_from_gif(Gif(path), Options())
    first = sequence.frames[0]

    assert (first.x_offset, first.y_offset) == (0, 0)
    assert first.image.size == (4, 4)
    assert first.image.pixel(0, 0) == TRANSPARENT
    assert first.image.pixel(1, 1) == RED
    assert first.image.pixel(2, 1) == GREEN
    assert sequence.loop_count == 1

    out = str(tmp_path / "padded.png")
    encode_apng(sequence, out)
    assert decode_apng(out).frames[1].x_offset == 3


def test_build_from_gif_upgrades_overflowing_palettes(tmp_path):
    frames = []
    for i in range(2):
        table = [(i, c, 0) for c in range(256)]
        frames.append(GifFrame(16, 16, list(range(256)), colortable=table))
    path = write_gif(tmp_path / "colors.gif", 16, 16, frames)

    sequence = build_from_gif(Gif(path), Options())
    assert all(isinstance(frame.image, TrueColorFrame) for frame in sequence)

    sequence = build_from_gif(Gif(path), Options(maintain_paletted=True))
    assert all(isinstance(frame.image, IndexedFrame) for frame in sequence)
    assert len(sequence.frames[0].image.palette) == 256


def stills(tmp_path, colors, size=(2, 2)):
    paths = []
    for i, color in enumerate(colors):
        path = str(tmp_path / "{}.png".format(i))
        Image.new("RGBA", size, color).save(path)
        paths.append(path)
    return paths


def test_build_from_stills_uses_options(tmp_path):
    paths = stills(tmp_path, [RED, GREEN, BLUE])
    options = Options(numerator=3, denominator=30, dispose=DisposeOp.NONE, blend=BlendOp.OVER, loop_count=2)

    sequence = build_from_stills([FrameDescriptor(image=path) for path in paths], options)

    assert len(sequence) == 3
    assert sequence.loop_count == 2
    assert sequence.default_frame is None
    for frame in sequence:
        assert (frame.delay_numerator, frame.delay_denominator) == (3, 30)
        assert frame.dispose_op is DisposeOp.NONE
        assert frame.blend_op is BlendOp.OVER
    assert [frame.image.pixel(0, 0) for frame in sequence] == [RED, GREEN, BLUE]


def test_build_from_stills_descriptor_overrides(tmp_path):
    paths = stills(tmp_path, [RED, GREEN])
    descriptors = [
        FrameDescriptor(image=paths[0], is_default=True),
        FrameDescriptor(image=paths[1], numerator=1, denominator=4, dispose=DisposeOp.PREVIOUS),
    ]

    sequence = build_from_stills(descriptors, Options())

    assert sequence.default_frame is sequence.frames[0]
    second = sequence.frames[1]
    assert (second.delay_numerator, second.delay_denominator) == (1, 4)
    assert second.dispose_op is DisposeOp.PREVIOUS
    assert second.blend_op is BlendOp.SOURCE


def test_default_image_option_flags_first_frame(tmp_path):
    paths = stills(tmp_path, [RED, GREEN])
    sequence = build_from_stills([FrameDescriptor(image=path) for path in paths], Options(default_image=True))

    assert [frame.is_default for frame in sequence] == [True, False]
    assert sequence.loop_length == 1


def test_default_only_allowed_first(tmp_path):
    paths = stills(tmp_path, [RED, GREEN])
    descriptors = [FrameDescriptor(image=paths[0]), FrameDescriptor(image=paths[1], is_default=True)]

    with pytest.raises(ConfigurationError):
        build_from_stills(descriptors, Options())


def test_missing_image_is_rejected():
    with pytest.raises(ConfigurationError):
        build_from_stills([FrameDescriptor(image="")], Options())

    with pytest.raises(ConfigurationError):
        build_from_stills([], Options())


def test_zero_denominator_is_rejected(tmp_path):
    paths = stills(tmp_path, [RED])

    with pytest.raises(ConfigurationError):
        build_from_stills([FrameDescriptor(image=paths[0], denominator=0)], Options())


def test_frame_larger_than_canvas_is_rejected(tmp_path):
    small = stills(tmp_path, [RED], size=(1, 1))
    big = str(tmp_path / "big.png")
    Image.new("RGBA", (3, 3), GREEN).save(big)

    with pytest.raises(ConfigurationError):
        build_from_stills([FrameDescriptor(image=small[0]), FrameDescriptor(image=big)], Options())


def test_build_from_stills_with_loader():
    frames = {
        "a": IndexedFrame(1, 1, [RED], [0]),
        "b": IndexedFrame(1, 1, [GREEN], [0]),
    }

    sequence = build_from_stills([FrameDescriptor(image="a"), FrameDescriptor(image="b")], Options(),
                                 loader=frames.__getitem__)

    assert sequence.frames[0].image.palette == [RED, GREEN]
    assert [resolve_all(frame.image) for frame in sequence] == [[RED], [GREEN]]


def test_build_still(tmp_path):
    path = stills(tmp_path, [BLUE])[0]
    sequence = build_still(path, Options(numerator=1, denominator=2))

    assert len(sequence) == 1
    assert sequence.frames[0].delay == pytest.approx(0.5)
    assert sequence.frames[0].image.pixel(1, 1) == BLUE


def padded_still(path, colors, indices):
    # Pillow writes the whole 256 entry palette into PLTE
    flat = []
    for color in colors:
        flat.extend(color[:3])
    flat.extend([0] * (768 - len(flat)))

    image = Image.new("P", (len(indices), 1))
    image.putpalette(flat)
    image.putdata(indices)
    image.save(path)
    return path


def test_build_from_stills_padded_palettes_stay_lossless(tmp_path):
    first = padded_still(str(tmp_path / "a.png"), [RED, GREEN], [0, 1])
    second = padded_still(str(tmp_path / "b.png"), [BLUE], [0, 0])

    sequence = build_from_stills([FrameDescriptor(image=first), FrameDescriptor(image=second)], Options())

    palette = sequence.frames[0].image.palette
    assert len(palette) == 4
    assert len(set(palette)) == len(palette)
    assert sequence.frames[1].image.palette is palette
    assert resolve_all(sequence.frames[0].image) == [RED, GREEN]
    assert resolve_all(sequence.frames[1].image) == [BLUE, BLUE]


def test_padding_with_full_palette_warns(tmp_path, capsys):
    table = [(i, i, i) for i in range(256)]
    frames = [
        GifFrame(1, 1, [5], left=1, top=1),
        GifFrame(2, 2, [0, 1, 2, 3]),
    ]
    path = write_gif(tmp_path / "full.gif", 2, 2, frames, global_table=table)

    sequence = build_from_gif(Gif(path), Options())

    assert "warn: {}: palette full, padding the first frame with color 0".format(path) in capsys.readouterr().out
    first = sequence.frames[0].image
    assert first.pixel(0, 0) == (0, 0, 0, 255)
    assert first.pixel(1, 1) == (5, 5, 5, 255)
