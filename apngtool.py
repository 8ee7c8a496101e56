import argparse
import os
import sys
import typing as t

from apngr import (
    AnimationSequence,
    ApngrError,
    FrameDescriptor,
    FrameNamer,
    Gif,
    Options,
    build_from_gif,
    build_from_stills,
    build_still,
    decode_apng,
    encode_apng,
    load_descriptor,
)
from apngr.config import BLEND_NAMES, DISPOSE_NAMES


GIF_EXTENSION = ".gif"


def add_animation_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--numerator", "-n", type=int, default=1, help=(
        "Delay numerator of each frame. Default is 1."
    ))
    parser.add_argument("--denominator", "-d", type=int, default=10, help=(
        "Delay denominator of each frame. Default is 10, so frames last "
        "1/10 of a second by default."
    ))
    parser.add_argument("--dispose", type=str, choices=list(DISPOSE_NAMES), default="background", help=(
        "Dispose operation of each frame."
    ))
    parser.add_argument("--blend", type=str, choices=list(BLEND_NAMES), default="source", help=(
        "Blend operation of each frame."
    ))
    parser.add_argument("--loop-count", "-l", dest="loop_count", type=int, default=0, help=(
        "Number of times the animation plays, 0 means forever."
    ))


def add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output-dir", "-o", dest="output_dir", type=str, default=".", help=(
        "Directory the output is written to. Default is the current "
        "directory."
    ))


def add_conversion_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--maintain-paletted", dest="maintain_paletted", action="store_true", help=(
        "Keep the output paletted even if the frames use more than 256 "
        "colors together. Extra colors are replaced by the nearest color "
        "already in the palette."
    ))


def prepare_argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=(
        "A tool for building, converting, extracting and inspecting animated "
        "PNGs. Each command takes any number of files."
    ))

    commands = parser.add_subparsers(dest="command", metavar="command")
    commands.required = True

    animate = commands.add_parser("animate", aliases=["a"], help=(
        "Build an APNG from still images."
    ))
    add_animation_arguments(animate)
    add_conversion_arguments(animate)
    animate.add_argument("--default", action="store_true", help=(
        "Use the first image as default image, shown by viewers without "
        "APNG support and left out of the animation."
    ))
    animate.add_argument("--descriptor", type=str, default=None, help=(
        "JSON file listing the frames and their settings, used instead of "
        "frame arguments."
    ))
    animate.add_argument("output", type=str, help="The APNG file to write.")
    animate.add_argument("frames", type=str, nargs="*", help="The frame images, in order.")

    convert = commands.add_parser("convert", aliases=["c"], help=(
        "Convert GIFs (or still images) to APNGs."
    ))
    add_output_arguments(convert)
    add_conversion_arguments(convert)
    convert.add_argument("paths", type=str, nargs="+", help="The files to convert.")

    extract = commands.add_parser("extract", aliases=["e"], help=(
        "Write every frame of an animation to its own PNG."
    ))
    add_output_arguments(extract)
    extract.add_argument("--start", type=int, default=0, help=(
        "Number of the first extracted frame. Default is 0."
    ))
    extract.add_argument("--padding", type=int, default=None, help=(
        "Zero-pad frame numbers to this width. Defaults to the number of "
        "digits in the frame count."
    ))
    extract.add_argument("--number-default", dest="number_default", action="store_true", help=(
        "Number the default image like other frames instead of writing it "
        "to default.png."
    ))
    extract.add_argument("paths", type=str, nargs="+", help="The animations to extract.")

    query = commands.add_parser("query", aliases=["q"], help=(
        "Print the frame layout of animations."
    ))
    query.add_argument("paths", type=str, nargs="+", help="The animations to inspect.")

    return parser


def base_name(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0]


def is_gif(path: str) -> bool:
    return os.path.splitext(path)[1].lower() == GIF_EXTENSION


def read_animation(path: str, options: Options) -> AnimationSequence:
    """
    Decode an animation, dispatching on the file extension.
    """
    if is_gif(path):
        return build_from_gif(Gif(path), options)

    return decode_apng(path)


def report_error(path: str, error: Exception) -> None:
    print("error: {}: {}".format(path, error), file=sys.stderr)


def for_each_path(paths: t.Sequence[str], action: t.Callable[[str], None]) -> bool:
    """
    Run action on every path. A failing path is reported and doesn't stop the others. Returns True if all succeeded.
    """
    ok = True

    for path in paths:
        try:
            action(path)
        except (OSError, ApngrError) as e:
            report_error(path, e)
            ok = False

    return ok


def mode_animate(args: argparse.Namespace, options: Options, parser: argparse.ArgumentParser) -> bool:
    if args.descriptor is not None:
        if args.frames:
            parser.error("give frames either with --descriptor or as arguments, not both")

        try:
            descriptors = load_descriptor(args.descriptor)
        except (OSError, ApngrError) as e:
            report_error(args.descriptor, e)
            return False
    else:
        if not args.frames:
            parser.error("no frames given")

        descriptors = [FrameDescriptor(image=path) for path in args.frames]

    for descriptor in descriptors:
        print("Adding {}...".format(descriptor.image))

    try:
        sequence = build_from_stills(descriptors, options)
        encode_apng(sequence, args.output)
    except (OSError, ApngrError) as e:
        report_error(args.output, e)
        return False

    print("Wrote {} frames to {}".format(len(sequence), args.output))
    return True


def convert_file(path: str, options: Options) -> None:
    output = os.path.join(options.output_dir, base_name(path) + ".png")

    if os.path.abspath(output) == os.path.abspath(path):
        raise ApngrError("refusing to overwrite the input with {}".format(output))

    print("Attempting to convert {} to {}".format(path, output))

    if is_gif(path):
        gif = Gif(path)
        print("Total Frames: {}".format(len(gif.images)))
        sequence = build_from_gif(gif, options)
    else:
        print("Not a GIF, converting as a still image")
        sequence = build_still(path, options)

    encode_apng(sequence, output)
    print("Done!")


def extract_file(path: str, options: Options) -> None:
    print("Parsing {}".format(path))
    sequence = read_animation(path, options)

    print("Extracting {} frames!".format(len(sequence)))
    output_dir = os.path.join(options.output_dir, base_name(path))

    try:
        os.makedirs(output_dir)
    except FileExistsError as e:
        msg = "{} already exists, please delete or move and try again"
        raise ApngrError(msg.format(output_dir)) from e

    namer = FrameNamer(
        len(sequence),
        padding=options.padding,
        start=options.start,
        number_default=options.number_default,
        has_default=sequence.default_frame is not None)

    for i, frame in enumerate(sequence):
        frame_path = os.path.join(output_dir, namer.name(i))
        print("{}...".format(frame_path), end="")

        frame.image.to_image().save(frame_path, "PNG")
        print("...ok!")


def query_file(path: str, options: Options) -> None:
    print("Parsing {}".format(path))
    read_animation(path, options).pretty_print()


def main(argv: t.Optional[t.Sequence[str]] = None) -> int:
    parser = prepare_argparser()
    args = parser.parse_args(argv)

    try:
        options = Options.from_args(args)
    except ApngrError as e:
        parser.error(str(e))

    command = args.command
    if command in ("animate", "a"):
        ok = mode_animate(args, options, parser)
    elif command in ("convert", "c"):
        ok = for_each_path(args.paths, lambda path: convert_file(path, options))
    elif command in ("extract", "e"):
        ok = for_each_path(args.paths, lambda path: extract_file(path, options))
    elif command in ("query", "q"):
        ok = for_each_path(args.paths, lambda path: query_file(path, options))
    else:
        raise Exception("internal error: invalid command")

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
