"""
Shared fixtures: synthetic photos with three finder patterns drawn by OpenCV.

The symbol spans (100, 100)-(500, 500) on a 600x600 canvas with 20 px
modules. A red dot at the symbol center lands at the clip center after
rectification, which is what the stub decoder looks for.
"""

import cv2
import numpy as np
import pytest

MODULE = 20
FINDER_ORIGINS = [(100, 100), (360, 100), (100, 360)]
SYMBOL_CENTER = (300, 300)
MARKER_TEXT = "HELLO-QR"


def draw_finder(image, origin, dark, light):
    """7x7 module finder: dark ring, light ring, 3x3 dark core."""
    x, y = origin
    m = MODULE
    cv2.rectangle(image, (x, y), (x + 7*m - 1, y + 7*m - 1), dark, -1)
    cv2.rectangle(image, (x + m, y + m), (x + 6*m - 1, y + 6*m - 1), light, -1)
    cv2.rectangle(image, (x + 2*m, y + 2*m), (x + 5*m - 1, y + 5*m - 1), dark, -1)


def make_symbol_image(dark, light):
    image = np.full((600, 600, 3), light, dtype=np.uint8)
    for origin in FINDER_ORIGINS:
        draw_finder(image, origin, (dark, dark, dark), (light, light, light))
    cv2.circle(image, SYMBOL_CENTER, 15, (0, 0, 255), -1)
    return image


def marker_decoder(clip):
    """Stub decoder: recognizes a clip whose center pixel is the red marker."""
    h, w = clip.shape[:2]
    b, g, r = clip[h // 2, w // 2][:3]
    if r > 200 and g < 60 and b < 60:
        return MARKER_TEXT
    return None


@pytest.fixture
def qr_image():
    """Well-lit, axis-aligned, black on white."""
    return make_symbol_image(0, 255)


@pytest.fixture
def low_contrast_image():
    """Finder patterns only 25 gray levels apart, straddling the threshold."""
    return make_symbol_image(90, 115)


@pytest.fixture
def plain_image():
    """No nested squares: a few text lines and a lone rectangle."""
    image = np.full((400, 600, 3), 255, dtype=np.uint8)
    for row, text in enumerate(["Invoice 0042", "Total 19.99", "Thank you"]):
        cv2.putText(image, text, (40, 80 + row * 60), cv2.FONT_HERSHEY_SIMPLEX, 1.2, (0, 0, 0), 2)
    cv2.rectangle(image, (420, 250), (520, 350), (0, 0, 0), 3)
    return image


@pytest.fixture
def stub_decoder():
    return marker_decoder
