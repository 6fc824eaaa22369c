"""Colour space conversion."""

import numpy as np


def rgb_to_hsv(colors: np.ndarray) -> np.ndarray:
    """
    Convert 0-255 RGB rows to HSV.

    Args:
        colors: (N, 3) array of RGB values in [0, 255]

    Returns:
        (N, 3) float64 array: hue in degrees [0, 360), saturation and value in [0, 1].
        Grey colours (no chroma) get hue 0 and saturation 0.
    """
    rgb = np.asarray(colors, dtype=np.float64).reshape(-1, 3) / 255.0
    r, g, b = rgb[:, 0], rgb[:, 1], rgb[:, 2]

    cmax = rgb.max(axis=1)
    cmin = rgb.min(axis=1)
    delta = cmax - cmin

    safe_delta = np.where(delta > 0, delta, 1.0)
    hue = np.zeros(len(rgb), dtype=np.float64)

    red_max = (delta > 0) & (cmax == r)
    green_max = (delta > 0) & (cmax == g) & ~red_max
    blue_max = (delta > 0) & ~red_max & ~green_max

    hue[red_max] = np.mod((g[red_max] - b[red_max]) / safe_delta[red_max], 6.0)
    hue[green_max] = (b[green_max] - r[green_max]) / safe_delta[green_max] + 2.0
    hue[blue_max] = (r[blue_max] - g[blue_max]) / safe_delta[blue_max] + 4.0
    hue *= 60.0

    saturation = np.where(cmax > 0, delta / np.where(cmax > 0, cmax, 1.0), 0.0)

    return np.column_stack([hue, saturation, cmax])
