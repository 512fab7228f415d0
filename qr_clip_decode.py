"""Clip decoders for QrLocator: rectified clip in, text or None out."""

import logging

import cv2
import numpy as np

log = logging.getLogger(__name__)


def to_decoder_image(clip):
    """Contiguous uint8 copy of the clip; None when it isn't an image."""
    if not isinstance(clip, np.ndarray) or clip.size == 0 or clip.ndim not in (2, 3):
        return None
    if clip.dtype != np.uint8:
        clip = np.clip(clip, 0, 255).astype(np.uint8)
    return np.ascontiguousarray(clip)


def opencv_clip_decoder(clip):
    """Decode with cv2.QRCodeDetector. Never raises; None on any failure."""
    image = to_decoder_image(clip)
    if image is None:
        return None
    try:
        text, _, _ = cv2.QRCodeDetector().detectAndDecode(image)
    except cv2.error as e:
        log.warning(f"clip conversion failed: {e}")
        return None
    return text or None
