from __future__ import annotations

import numpy as np

# Base particle colors per subshell (index = l), tuned for each background.
ORBITAL_PALETTES: dict[str, dict] = {
    "dark": {
        "meta": {"name": "Dark background", "mode": "dark"},
        "subshells": (
            (0.35, 1.0, 0.55),  # s
            (0.3, 0.7, 1.0),  # p
            (1.0, 1.0, 1.0),  # d
            (1.0, 0.35, 1.0),  # f
            (1.0, 0.95, 0.3),  # g
        ),
    },
    "light": {
        "meta": {"name": "Light background", "mode": "light"},
        "subshells": (
            (0.05, 0.45, 0.18),
            (0.1, 0.35, 0.7),
            (0.1, 0.1, 0.1),
            (0.55, 0.1, 0.55),
            (0.55, 0.38, 0.05),
        ),
    },
}

def theme_mode(is_dark: bool) -> str:
    return "dark" if is_dark else "light"

def orbital_base_color(l: int, is_dark: bool = True) -> np.ndarray:
    subshells = ORBITAL_PALETTES[theme_mode(is_dark)]["subshells"]
    color = subshells[l] if 0 <= l < len(subshells) else subshells[0]
    return np.asarray(color, dtype=np.float32)

def jittered_colors(
    base: np.ndarray,
    count: int,
    rng: np.random.Generator,
    low: float = 0.85,
    high: float = 1.0,
) -> np.ndarray:
    """Per-particle brightness variation around a base color."""
    variation = low + rng.random(count) * (high - low)
    return (variation[:, None] * np.asarray(base, dtype=np.float32)[None, :]).astype(np.float32)
