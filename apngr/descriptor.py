"""
Frame descriptor files. A descriptor is a JSON list of frames to animate, for example:

    [
        {"image": "idle.png", "default": true},
        {"image": "walk1.png", "numerator": 1, "denominator": 12},
        {"image": "walk2.png", "dispose": "previous", "blend": "over"}
    ]

An object with a "frames" list is accepted as well. Image paths are relative to the descriptor file.
"""

import json
import os
import typing as t

from .builder import FrameDescriptor
from .config import check_delay, parse_blend, parse_dispose
from .errors import ConfigurationError

__all__ = (
    "load_descriptor",
    "parse_descriptor",
)


def _optional_int(entry: dict, key: str, index: int) -> t.Optional[int]:
    value = entry.get(key)

    if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
        raise ConfigurationError("frame {}: {} must be an integer, got {!r}".format(index, key, value))

    return value


def _optional_name(entry: dict, key: str, index: int) -> t.Optional[str]:
    value = entry.get(key)

    if value is not None and not isinstance(value, str):
        raise ConfigurationError("frame {}: {} must be a string, got {!r}".format(index, key, value))

    return value


def parse_descriptor(data: t.Any, base_dir: str = ".") -> t.List[FrameDescriptor]:
    """
    Validate decoded descriptor JSON and turn it into FrameDescriptors.
    """
    if isinstance(data, dict):
        data = data.get("frames")

    if not isinstance(data, list) or not data:
        raise ConfigurationError("descriptor must be a non-empty list of frames")

    descriptors = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ConfigurationError("frame {}: expected an object, got {!r}".format(i, entry))

        image = entry.get("image")
        if not image or not isinstance(image, str):
            raise ConfigurationError("frame {}: missing image".format(i))

        numerator = _optional_int(entry, "numerator", i)
        denominator = _optional_int(entry, "denominator", i)

        if denominator is not None:
            check_delay(numerator or 0, denominator)
        elif numerator is not None:
            check_delay(numerator, 1)

        is_default = entry.get("default")
        if is_default is not None and not isinstance(is_default, bool):
            raise ConfigurationError("frame {}: default must be true or false, got {!r}".format(i, is_default))

        dispose = _optional_name(entry, "dispose", i)
        blend = _optional_name(entry, "blend", i)

        descriptors.append(FrameDescriptor(
            image=os.path.join(base_dir, image),
            numerator=numerator,
            denominator=denominator,
            is_default=is_default,
            dispose=parse_dispose(dispose) if dispose is not None else None,
            blend=parse_blend(blend) if blend is not None else None))

    return descriptors


def load_descriptor(path: str) -> t.List[FrameDescriptor]:
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError("{}: invalid JSON: {}".format(path, e)) from e

    return parse_descriptor(data, os.path.dirname(path))
