from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from orbcloud.config import RadialSettings
from orbcloud.physics.wavefunctions import radial_wavefunction


@dataclass(frozen=True)
class RadialDistribution:
    radii: np.ndarray
    cdf: np.ndarray
    max_radius: float
    peak_amplitude: float
    step: float

    @property
    def is_fallback(self) -> bool:
        return len(self.radii) == 2


def heuristic_extent(n: int, atomic_number: int) -> float:
    """Bounding radius expected from the n^2/Z scaling of hydrogen-like orbitals."""
    scaled = (n * n) / max(1, atomic_number)
    return max(2.0, scaled * 1.2 + 0.5 * n)


def radial_step(n: int, atomic_number: int, settings: RadialSettings | None = None) -> float:
    settings = settings or RadialSettings()
    raw = (n * n) / max(120.0, atomic_number * 420.0)
    return float(min(settings.max_step, max(settings.min_step, raw)))


def build_radial_distribution(
    atomic_number: int,
    n: int,
    l: int,
    settings: RadialSettings | None = None,
) -> RadialDistribution:
    """March outward in fixed steps accumulating the radial probability mass.

    The march stops once at least ``min_steps`` points exist and the
    trapezoidal mass reaches ``target_cdf``, or at ``max_steps``.
    """
    settings = settings or RadialSettings()
    step = radial_step(n, atomic_number, settings)

    radii = np.arange(settings.max_steps, dtype=float) * step
    amplitude = radial_wavefunction(atomic_number, n, l, radii)
    amplitude_sq = amplitude * amplitude
    pdf = amplitude_sq * radii * radii

    area = np.empty_like(pdf)
    area[0] = 0.0
    np.cumsum((pdf[1:] + pdf[:-1]) * step * 0.5, out=area[1:])

    first_allowed = max(settings.min_steps - 1, 0)
    reached = np.nonzero(area[first_allowed:] >= settings.target_cdf)[0]
    stop = first_allowed + int(reached[0]) if reached.size else settings.max_steps - 1
    stop = min(stop, settings.max_steps - 1)

    radii = radii[: stop + 1]
    area = area[: stop + 1]
    peak = float(amplitude_sq[: stop + 1].max()) if stop >= 0 else 0.0

    total = float(area[-1]) if area.size else 0.0
    if not np.isfinite(total) or total <= 0 or radii.size < 2:
        fallback_radius = max(3.0, heuristic_extent(n, atomic_number))
        return RadialDistribution(
            radii=np.array([0.0, fallback_radius], dtype=np.float64),
            cdf=np.array([0.0, 1.0], dtype=np.float64),
            max_radius=fallback_radius,
            peak_amplitude=max(peak, 1e-6),
            step=step,
        )

    cdf = np.clip(area / total, 0.0, 1.0)
    cdf[-1] = 1.0
    return RadialDistribution(
        radii=radii,
        cdf=cdf,
        max_radius=float(radii[-1]),
        peak_amplitude=max(peak, 1e-12),
        step=step,
    )
