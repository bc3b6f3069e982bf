"""CHIP-8 frame export utilities for hosts and the headless runner."""

from typing import Tuple

import numpy as np
from PIL import Image


def chip8_display_to_rgb(
    display,
    scale: int = 8,
    on_color: Tuple[int, int, int] = (0, 255, 0),
    off_color: Tuple[int, int, int] = (0, 0, 0),
) -> np.ndarray:
    """Convert a CHIP-8 display to an RGB array with optional upscaling.

    Args:
        display: Array of shape (32, 64) indexed [y, x], nonzero for lit pixels
        scale: Upscaling factor for better visibility (default: 8x)
        on_color: RGB color for "on" pixels (default: green)
        off_color: RGB color for "off" pixels (default: black)

    Returns:
        RGB array of shape (32*scale, 64*scale, 3) with uint8 values
    """
    pixels = np.asarray(display).astype(np.bool_)
    height, width = pixels.shape

    rgb_frame = np.zeros((height, width, 3), dtype=np.uint8)

    rgb_frame[pixels] = on_color
    rgb_frame[~pixels] = off_color

    # Nearest neighbor upscaling
    if scale > 1:
        rgb_frame = np.repeat(np.repeat(rgb_frame, scale, axis=0), scale, axis=1)

    return rgb_frame


def create_color_scheme(
    scheme: str = "classic",
) -> Tuple[Tuple[int, int, int], Tuple[int, int, int]]:
    """Get predefined color schemes for CHIP-8 rendering.

    Args:
        scheme: Color scheme name ("classic", "amber", "white", "blue", "retro", "octo")

    Returns:
        Tuple of (on_color, off_color) as RGB tuples
    """
    schemes = {
        "classic": ((0, 255, 0), (0, 0, 0)),  # Green on black
        "amber": ((255, 176, 0), (0, 0, 0)),  # Amber on black
        "white": ((255, 255, 255), (0, 0, 0)),  # White on black
        "blue": ((0, 255, 255), (0, 0, 64)),  # Cyan on dark blue
        "retro": ((255, 255, 0), (64, 0, 64)),  # Yellow on purple
        "octo": ((255, 204, 0), (153, 102, 0)),  # Octo default palette
    }

    if scheme not in schemes:
        raise ValueError(
            f"Unknown color scheme '{scheme}'. Available: {list(schemes.keys())}"
        )

    return schemes[scheme]


def display_to_text(display, on: str = "#", off: str = ".") -> str:
    """Render a display as one text line per pixel row."""
    pixels = np.asarray(display).astype(np.bool_)
    return "\n".join("".join(on if lit else off for lit in row) for row in pixels)


def save_frame(display, filename: str, scale: int = 8, color_scheme: str = "classic") -> Image.Image:
    """Save a display as an image file (format chosen from the extension)."""
    on_color, off_color = create_color_scheme(color_scheme)
    image = Image.fromarray(chip8_display_to_rgb(display, scale, on_color, off_color))
    image.save(filename)
    return image
