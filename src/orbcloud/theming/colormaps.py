from __future__ import annotations

import cmcrameri.cm as cmc
import matplotlib
import numpy as np


def resolve_cmap(name: str):
    try:
        return matplotlib.colormaps[name]
    except KeyError:
        pass
    cmap = getattr(cmc, name, None)
    if cmap is not None:
        return cmap
    try:
        return matplotlib.colormaps[f"cmc.{name}"]
    except KeyError:
        pass
    return matplotlib.colormaps["viridis"]


def phase_colors(amplitudes: np.ndarray, cmap_name: str = "coolwarm") -> np.ndarray:
    """Map signed amplitudes in [-1, 1] to RGB through a diverging colormap."""
    cmap = resolve_cmap(cmap_name)
    scaled = 0.5 + 0.5 * np.clip(np.asarray(amplitudes, dtype=float), -1.0, 1.0)
    return np.asarray(cmap(scaled))[:, :3].astype(np.float32)
