"""
Helpers for turning the machine's display bitmap into something viewable
"""

import numpy as np
from PIL import Image

from .machine import DISPLAY_HEIGHT, DISPLAY_WIDTH


def _as_grid(display: np.ndarray) -> np.ndarray:
    # Accepts the flat view from Machine.get_display() or the 2D bitmap
    return np.asarray(display, dtype=bool).reshape(DISPLAY_HEIGHT, DISPLAY_WIDTH)


def display_to_image(display: np.ndarray, scale: int = 8) -> np.ndarray:
    """Get display as a scaled uint8 image array (0 = off, 255 = on)"""
    display_img = _as_grid(display).astype(np.uint8) * 255
    return np.repeat(np.repeat(display_img, scale, axis=0), scale, axis=1)


def save_display_png(display: np.ndarray, path: str, scale: int = 8) -> str:
    """Save the display as a greyscale PNG and return the path"""
    img = Image.fromarray(display_to_image(display, scale))
    img.save(path)
    return path


def display_to_text(display: np.ndarray, on: str = '██', off: str = '  ') -> str:
    """Render the display as text, one line per pixel row"""
    return '\n'.join(
        ''.join(on if pixel else off for pixel in row)
        for row in _as_grid(display)
    )
