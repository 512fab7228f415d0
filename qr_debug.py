"""QR locate debug visualization - saves intermediate results to disk."""

import os

import cv2
import numpy as np


class LocatorSetupError(RuntimeError):
    """The debug output directory could not be prepared."""


# BGR, cycled by depth
DEPTH_COLORS = [
    (0, 255, 0),
    (0, 140, 255),
    (200, 100, 0),
    (200, 0, 200),
    (0, 200, 200),
]


def _as_bgr(image):
    """Copy of image as 3-channel BGR, for drawing."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image.copy()


class DebugSink:
    """Writes images and notes into debug_dir. Never touches the arrays it is given."""

    def __init__(self, debug_dir):
        self.debug_dir = debug_dir
        try:
            os.makedirs(debug_dir, exist_ok=True)
        except OSError as e:
            raise LocatorSetupError(f"Cannot create debug dir {debug_dir}: {e}") from e

    def path(self, name):
        return os.path.join(self.debug_dir, name)

    def save(self, name, data):
        """Save image to debug_dir."""
        if data.dtype == bool:
            data = data.astype(np.uint8) * 255
        cv2.imwrite(self.path(name), data)

    def save_candidates(self, name, source, buckets):
        """Source with every candidate contour outlined, colored and labelled by depth."""
        vis = _as_bgr(source)
        for n, depth in enumerate(sorted(buckets)):
            color = DEPTH_COLORS[n % len(DEPTH_COLORS)]
            for c in buckets[depth]:
                cx, cy = int(c.center[0]), int(c.center[1])
                cv2.drawContours(vis, [c.contour], -1, color, 2)
                cv2.circle(vis, (cx, cy), 5, (0, 0, 255), -1)
                cv2.putText(vis, str(depth), (cx+8, cy-8), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2)
        self.save(name, vis)

    def save_triangle(self, name, source, points):
        """Source with the three candidate centers joined in red."""
        vis = _as_bgr(source)
        pts = [(int(round(x)), int(round(y))) for x, y in points]
        for i in range(3):
            cv2.line(vis, pts[i], pts[(i+1) % 3], (0, 0, 255), 2)
        self.save(name, vis)

    def save_summary(self, name, lines):
        with open(self.path(name), 'w') as f:
            f.write('\n'.join(lines) + '\n')
