#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Conversions between ordinary color values and the integer encodings appliances use."""

from __future__ import annotations

from .internal_types import *

MIN_BRIGHTNESS = 1
MAX_BRIGHTNESS = 100

def _check_channel(name: str, value: int) -> None:
    if not 0 <= value <= 255:
        raise ValueError(f"{name} component must be in the range 0-255, got {value}")

def rgb_to_yeelight(red: int, green: int, blue: int) -> int:
    """Packs an RGB color into the single integer (0x000000-0xffffff) that set_rgb expects."""
    _check_channel("red", red)
    _check_channel("green", green)
    _check_channel("blue", blue)
    return (red << 16) | (green << 8) | blue

def yeelight_to_rgb(value: int) -> Tuple[int, int, int]:
    """Unpacks the "rgb" property reported by an appliance into (red, green, blue)."""
    if not 0 <= value <= 0xffffff:
        raise ValueError(f"RGB value must be in the range 0-16777215, got {value}")
    return ((value >> 16) & 0xff, (value >> 8) & 0xff, value & 0xff)

def check_brightness(brightness: int) -> int:
    """Returns brightness if it is a valid percentage (1-100); raises ValueError otherwise."""
    if not MIN_BRIGHTNESS <= brightness <= MAX_BRIGHTNESS:
        raise ValueError(f"The brightness value to set must be in the range {MIN_BRIGHTNESS}-{MAX_BRIGHTNESS}, got {brightness}")
    return brightness
