#!/usr/bin/env python3.11
"""
QR Clip Locator - find the QR symbol in a photo and cut it out
Usage: python3.11 qr_locate.py <image_path> [--debug]
"""

import logging
import os
from dataclasses import dataclass, replace as dc_replace
from itertools import combinations
from typing import Callable, Dict, List, Optional, Tuple

import cv2
import numpy as np

from qr_debug import DebugSink, LocatorSetupError

log = logging.getLogger(__name__)

Point = Tuple[float, float]
ClipDecoder = Callable[[np.ndarray], Optional[str]]

# hierarchy row = [next, prev, first_child, parent]
HIERARCHY_FIRST_CHILD = 2


@dataclass(frozen=True)
class LocatorConfig:
    """Empirically tuned constants; other symbol sizes or resolutions may need re-tuning."""
    blur_kernel: Tuple[int, int] = (5, 5)
    threshold: int = 100
    canny_low: int = 112
    canny_high: int = 255
    square_tolerance: float = 1.2
    min_depth: int = 5
    min_bucket: int = 3
    max_bucket: int = 5
    # (2 * sin(80/2))^2 and (2 * sin(100/2))^2
    ratio_min: float = 1.6384
    ratio_max: float = 2.3104
    clip_size: int = 200
    clip_margin: int = 50

    def replace(self, **changes):
        return dc_replace(self, **changes)


DEFAULT_CONFIG = LocatorConfig()


@dataclass
class Candidate:
    index: int
    contour: np.ndarray
    depth: int
    center: Point


# ============================================================================
# PRE-PROCESSING
# ============================================================================

def prepare(source, enhanced=False, config=DEFAULT_CONFIG, sink=None):
    """
    Turn the source image into a Canny edge map.

    The enhanced round binarizes before edge detection, which helps with
    dim or low-contrast photos at the cost of an extra pass.
    """
    round_name = 'enhanced' if enhanced else 'plain'
    if source.ndim == 3 and source.shape[2] == 1:
        work = source[:, :, 0].copy()
    elif source.ndim == 3 and source.shape[2] == 4:
        work = cv2.cvtColor(source, cv2.COLOR_BGRA2GRAY)
    elif source.ndim == 3:
        work = cv2.cvtColor(source, cv2.COLOR_BGR2GRAY)
    else:
        work = source.copy()

    work = cv2.GaussianBlur(work, config.blur_kernel, 0)
    if sink:
        sink.save(f"{round_name}_blur.png", work)

    if enhanced:
        _, work = cv2.threshold(work, config.threshold, 255, cv2.THRESH_BINARY)
        if sink:
            sink.save(f"{round_name}_threshold.png", work)

    edges = cv2.Canny(work, config.canny_low, config.canny_high)
    if sink:
        sink.save(f"{round_name}_canny.png", edges)
    return edges


# ============================================================================
# CONTOURS & CANDIDATES
# ============================================================================

def extract_contours(edges):
    """All contours with full nesting, no point simplification."""
    contours, hierarchy = cv2.findContours(edges, cv2.RETR_TREE, cv2.CHAIN_APPROX_NONE)
    if hierarchy is None:
        return [], np.empty((0, 4), dtype=np.int32)
    return list(contours), hierarchy.reshape(-1, 4)


def is_square(rect, config=DEFAULT_CONFIG):
    """rect from cv2.minAreaRect; True when w/h is strictly within the tolerance."""
    _, (w, h), _ = rect
    if h == 0:
        return False
    ratio = w / h
    return 1 / config.square_tolerance < ratio < config.square_tolerance


def nesting_depth(hierarchy, idx):
    """Count nested children along the first-child chain."""
    depth = 0
    child = hierarchy[idx][HIERARCHY_FIRST_CHILD]
    while child != -1:
        depth += 1
        child = hierarchy[child][HIERARCHY_FIRST_CHILD]
    return depth


def filter_candidates(contours, hierarchy, config=DEFAULT_CONFIG) -> Dict[int, List[Candidate]]:
    """
    Keep square contours that nest deep enough to be finder patterns, grouped by depth.

    Canny turns every dark/light boundary of a finder pattern into a thin ring,
    and each ring gives an outer and an inner contour, so the three concentric
    squares show up as a chain of at least 5 children. Text glyphs nest too,
    but rarely with the same depth three times over.
    """
    buckets = {}
    for i, cnt in enumerate(contours):
        rect = cv2.minAreaRect(cnt)
        if not is_square(rect, config):
            continue
        depth = nesting_depth(hierarchy, i)
        if depth < config.min_depth:
            continue
        buckets.setdefault(depth, []).append(Candidate(i, cnt, depth, tuple(rect[0])))
    return buckets


def explorable_buckets(buckets, config=DEFAULT_CONFIG):
    """Yield (depth, members) for buckets small enough to search, shallow first."""
    for depth in sorted(buckets):
        members = buckets[depth]
        # fewer than 3 can't make a triple; more than 5 is noise or a second code
        if config.min_bucket <= len(members) <= config.max_bucket:
            yield depth, members
        else:
            log.debug(f"skip depth {depth}: {len(members)} candidates")


# ============================================================================
# GEOMETRY
# ============================================================================

def squared_sides(points):
    """Squared lengths (l01, l12, l20) of the triangle p0-p1-p2."""
    p0, p1, p2 = points
    l01 = (p0[0]-p1[0])**2 + (p0[1]-p1[1])**2
    l12 = (p1[0]-p2[0])**2 + (p1[1]-p2[1])**2
    l20 = (p2[0]-p0[0])**2 + (p2[1]-p0[1])**2
    return l01, l12, l20


def ratio_in_bounds(ratio, config=DEFAULT_CONFIG):
    return config.ratio_min <= ratio <= config.ratio_max


def check_right_triangle(points, config=DEFAULT_CONFIG) -> Optional[Tuple[Point, Point, Point]]:
    """
    Check that three centers form a roughly isosceles right triangle.

    Compares the longest and shortest squared sides instead of computing the
    angle. On success returns the points reordered so that index 0 is the
    right-angle corner and (1, 2) span the hypotenuse; otherwise None.
    """
    l01, l12, l20 = squared_sides(points)
    if l01 == 0 or l12 == 0 or l20 == 0:
        return None

    # the middle side is always in range once the extremes are
    l_a, _, l_c = sorted((l01, l12, l20))
    if not ratio_in_bounds(l_c / l_a, config):
        return None

    p0, p1, p2 = points
    if l01 > l12 and l01 > l20:
        return p2, p0, p1
    if l20 > l01 and l20 > l12:
        return p1, p2, p0
    return p0, p1, p2


def fourth_corner(p0, p1, p2) -> Point:
    """Complete the parallelogram opposite the right-angle corner p0."""
    return (p1[0] + p2[0] - p0[0], p1[1] + p2[1] - p0[1])


def rectify(source, corners, config=DEFAULT_CONFIG):
    """Warp (p0, p1, p2, p3) onto a square of clip_size with clip_margin on every side."""
    s, m = config.clip_size, config.clip_margin
    src_pts = np.array(corners, dtype=np.float32)
    dst_pts = np.array([[m, m], [m + s, m], [m, m + s], [m + s, m + s]], dtype=np.float32)
    transform = cv2.getPerspectiveTransform(src_pts, dst_pts)
    side = s + 2 * m
    return cv2.warpPerspective(source, transform, (side, side), flags=cv2.INTER_LINEAR)


def reconstruct(source, candidates, decoder, config=DEFAULT_CONFIG, sink=None, tag=''):
    """
    尝试候选点的所有三元组, 直角三角形才切图解码

    Try every 3-combination of candidates, rectify the ones that look like
    three QR corners and hand each clip to the decoder. Returns the first text.
    """
    for combo in combinations(range(len(candidates)), 3):
        points = tuple(candidates[k].center for k in combo)
        label = '-'.join(str(k) for k in combo)
        if sink:
            sink.save_triangle(f"{tag}_test_{label}.png", source, points)

        triple = check_right_triangle(points, config)
        if triple is None:
            log.debug(f"{tag} {label}: not a right triangle")
            continue

        p0, p1, p2 = triple
        p3 = fourth_corner(p0, p1, p2)
        try:
            clip = rectify(source, (p0, p1, p2, p3), config)
        except cv2.error as e:
            log.warning(f"{tag} {label}: cannot rectify clip: {e}")
            continue
        if sink:
            sink.save(f"{tag}_match_{label}.png", clip)

        text = decoder(clip)
        if text:
            log.debug(f"{tag} {label}: decoded")
            return text
    return None


def scan(source, edges, decoder, config=DEFAULT_CONFIG, sink=None, round_name='plain'):
    """Contours -> depth buckets -> triangle search for one pre-processing round."""
    contours, hierarchy = extract_contours(edges)
    buckets = filter_candidates(contours, hierarchy, config)
    sizes = {d: len(m) for d, m in buckets.items()}
    log.debug(f"{round_name}: {len(contours)} contours, bucket sizes {sizes}")
    if sink:
        sink.save_candidates(f"{round_name}_candidates.png", source, buckets)

    for depth, members in explorable_buckets(buckets, config):
        text = reconstruct(source, members, decoder, config, sink, tag=f"{round_name}_d{depth}")
        if text is not None:
            return text
    return None


# ============================================================================
# LOCATOR
# ============================================================================

class QrLocator:
    """
    Locate a QR code in a photo and decode the rectified clip with `decoder`.

    decoder: callable(clip ndarray) -> text or None, must not raise on failure
    debug_dir: when set, intermediate images are written there
    """

    def __init__(self, decoder: ClipDecoder, debug_dir=None, config: Optional[LocatorConfig] = None):
        self.decoder = decoder
        self.config = config or DEFAULT_CONFIG
        self.sink = DebugSink(debug_dir) if debug_dir else None

    def decode(self, image) -> Optional[str]:
        """Plain round first; if nothing decodes, retry once with thresholding."""
        if not isinstance(image, np.ndarray) or image.size == 0:
            raise ValueError("Expected a non-empty image array")
        if image.ndim not in (2, 3) or (image.ndim == 3 and image.shape[2] not in (1, 3, 4)):
            raise ValueError(f"Expected a gray, BGR or BGRA image, got shape {image.shape}")
        if image.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {image.dtype}")

        edges = prepare(image, False, self.config, self.sink)
        text = scan(image, edges, self.decoder, self.config, self.sink, 'plain')
        if text is None:
            # 没有解析到定位点, 二值化增强后再试一次
            log.info("not found, try threshold")
            edges = prepare(image, True, self.config, self.sink)
            text = scan(image, edges, self.decoder, self.config, self.sink, 'enhanced')

        if text is None:
            log.info("no QR code located")
        if self.sink:
            self.sink.save_summary("result.txt", [f"Result: {text}"])
        return text


def decode_qr(image_path, debug_dir=None, decoder=None):
    """Decode the QR code in an image file. Returns text or None."""
    image = cv2.imread(image_path)
    if image is None:
        raise ValueError(f"Cannot load {image_path}")
    if decoder is None:
        from qr_clip_decode import opencv_clip_decoder
        decoder = opencv_clip_decoder
    return QrLocator(decoder, debug_dir=debug_dir).decode(image)


if __name__ == "__main__":
    import sys
    args = [a for a in sys.argv[1:] if not a.startswith('--')]
    flags = [a for a in sys.argv[1:] if a.startswith('--')]
    if not args:
        print(__doc__.strip())
        sys.exit(2)
    path = args[0]

    logging.basicConfig(level=logging.DEBUG if '--debug' in flags else logging.INFO,
                        format="[%(levelname)s] %(name)s: %(message)s")

    debug_dir = None
    if '--debug' in flags:
        base = os.path.splitext(os.path.basename(path))[0]
        debug_dir = os.path.join(os.path.dirname(path) or '.', f"{base}_debug")
        print(f"Debug output -> {debug_dir}/")

    try:
        result = decode_qr(path, debug_dir=debug_dir)
    except (ValueError, LocatorSetupError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(result if result is not None else "Not found")
    sys.exit(0 if result is not None else 1)
