from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from orbcloud.physics.wavefunctions import associated_legendre, real_spherical_harmonic

TWO_PI = 2.0 * np.pi
WEIGHT_FLOOR = 1e-6


@dataclass(frozen=True)
class AngularDistribution:
    l: int
    m: int
    theta_values: np.ndarray
    theta_cdf: np.ndarray
    phi_values: np.ndarray | None
    phi_cdf: np.ndarray | None
    peak_amplitude: float

    @property
    def has_phi_table(self) -> bool:
        return self.phi_values is not None and self.phi_cdf is not None


def theta_weight(l: int, m_abs: int, theta: np.ndarray) -> np.ndarray:
    legendre = associated_legendre(l, m_abs, np.cos(theta))
    return legendre * legendre * np.maximum(np.sin(theta), WEIGHT_FLOOR)


def phi_weight(m: int, phi: np.ndarray) -> np.ndarray:
    m_abs = abs(m)
    if m_abs == 0:
        return np.ones_like(phi)
    base = np.sin(m_abs * phi) if m < 0 else np.cos(m_abs * phi)
    return np.maximum(base * base, WEIGHT_FLOOR)


def _normalized_cdf(values: np.ndarray, weights: np.ndarray) -> np.ndarray:
    step = values[1] - values[0]
    cumulative = np.empty_like(weights)
    cumulative[0] = 0.0
    np.cumsum((weights[1:] + weights[:-1]) * step * 0.5, out=cumulative[1:])
    total = cumulative[-1]
    if not np.isfinite(total) or total <= 0:
        return np.linspace(0.0, 1.0, len(values))
    cdf = np.clip(cumulative / total, 0.0, 1.0)
    cdf[-1] = 1.0
    return cdf


def peak_angular_amplitude(l: int, m: int) -> float:
    """Brute-force maximum of Y_lm^2 over a midpoint grid."""
    m_abs = abs(m)
    theta_samples = max(96, (l + m_abs + 1) * 48)
    phi_samples = 1 if m_abs == 0 else max(192, m_abs * 256)
    theta = np.pi * (np.arange(theta_samples) + 0.5) / theta_samples
    if m_abs == 0:
        phi = np.zeros(1)
    else:
        phi = TWO_PI * (np.arange(phi_samples) + 0.5) / phi_samples
    values = real_spherical_harmonic(l, m, theta[:, None], phi[None, :])
    peak = float(np.max(values * values)) if values.size else 0.0
    if not np.isfinite(peak) or peak <= 0:
        return 1.0 / (4.0 * np.pi)
    return peak


def build_angular_distribution(l: int, m: int) -> AngularDistribution:
    m_abs = abs(m)

    theta_steps = max(180, (l + m_abs + 1) * 60)
    theta_values = np.linspace(0.0, np.pi, theta_steps + 1)
    theta_cdf = _normalized_cdf(theta_values, theta_weight(l, m_abs, theta_values))

    phi_values = None
    phi_cdf = None
    if m_abs > 0:
        phi_steps = max(360, m_abs * 240)
        phi_values = np.linspace(0.0, TWO_PI, phi_steps + 1)
        phi_cdf = _normalized_cdf(phi_values, phi_weight(m, phi_values))

    return AngularDistribution(
        l=l,
        m=m,
        theta_values=theta_values,
        theta_cdf=theta_cdf,
        phi_values=phi_values,
        phi_cdf=phi_cdf,
        peak_amplitude=peak_angular_amplitude(l, m),
    )
