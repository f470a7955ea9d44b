"""Color quantization strategies used for dominant color extraction."""

from __future__ import annotations

from typing import Protocol

import numpy as np

RGB = tuple[int, int, int]

__all__ = ["RGB", "Quantizer", "median_cut"]


class Quantizer(Protocol):
    def __call__(self, samples: np.ndarray, k: int) -> list[RGB]:
        """Reduce an ``(n, 3)`` uint8 sample array to at most ``k`` colors.

        The palette is ordered from most to least significant.
        """
        ...


def median_cut(samples: np.ndarray, k: int) -> list[RGB]:
    """Median-cut quantization over RGB samples.

    Boxes are split at the median of their widest channel, always picking the
    box with the largest population times channel range. Each palette entry
    is the rounded mean of the samples in its box, ordered by population.
    """
    pixels = np.asarray(samples, dtype=np.uint8).reshape(-1, 3)
    if pixels.shape[0] == 0:
        raise ValueError("no samples to quantize")
    if k < 1:
        raise ValueError("palette size must be positive")

    boxes: list[np.ndarray] = [pixels]
    while len(boxes) < k:
        best_index = -1
        best_score = 0
        for index, box in enumerate(boxes):
            if box.shape[0] < 2:
                continue
            spread = int(np.ptp(box, axis=0).max())
            score = box.shape[0] * spread
            if score > best_score:
                best_index, best_score = index, score
        if best_index < 0:
            break

        box = boxes[best_index]
        channel = int(np.ptp(box, axis=0).argmax())
        ordered = box[np.argsort(box[:, channel], kind="stable")]
        middle = ordered.shape[0] // 2
        boxes[best_index : best_index + 1] = [ordered[:middle], ordered[middle:]]

    boxes.sort(key=lambda box: box.shape[0], reverse=True)
    return [_box_color(box) for box in boxes]


def _box_color(box: np.ndarray) -> RGB:
    r, g, b = np.rint(box.mean(axis=0)).astype(int).tolist()
    return (r, g, b)
