from __future__ import annotations

from functools import lru_cache
from math import factorial, pi, sqrt

import numpy as np

from orbcloud.quantum import QuantumState


@lru_cache(maxsize=256)
def _factorial_ratio(numerator: int, denominator: int) -> float:
    """numerator! / denominator! computed exactly before rounding to float."""
    return factorial(numerator) / factorial(denominator)


def associated_laguerre(k: int, alpha: float, x: np.ndarray | float) -> np.ndarray:
    """Generalized Laguerre L_k^alpha(x) by the three-term recurrence."""
    x = np.asarray(x, dtype=float)
    if k < 0:
        return np.zeros_like(x)
    previous = np.ones_like(x)
    if k == 0:
        return previous
    current = 1.0 + alpha - x
    for i in range(2, k + 1):
        following = ((2 * i - 1 + alpha - x) * current - (i - 1 + alpha) * previous) / i
        previous, current = current, following
    return current


def associated_legendre(l: int, m: int, x: np.ndarray | float) -> np.ndarray:
    """Associated Legendre P_l^m(x) for m >= 0, including the Condon-Shortley phase."""
    x = np.asarray(x, dtype=float)
    if m < 0 or m > l:
        return np.zeros_like(x)
    x = np.clip(x, -1.0, 1.0)
    pmm = np.ones_like(x)
    if m > 0:
        somx2 = np.sqrt((1.0 - x) * (1.0 + x))
        odd = 1.0
        for _ in range(m):
            pmm = -odd * somx2 * pmm
            odd += 2.0
    if l == m:
        return pmm
    pmmp1 = x * (2 * m + 1) * pmm
    if l == m + 1:
        return pmmp1
    for ll in range(m + 2, l + 1):
        pll = ((2 * ll - 1) * x * pmmp1 - (ll + m - 1) * pmm) / (ll - m)
        pmm, pmmp1 = pmmp1, pll
    return pmmp1


def cartesian_to_spherical(x, y, z) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    z = np.asarray(z, dtype=float)
    r = np.sqrt(x**2 + y**2 + z**2)
    cos_theta = np.divide(z, r, out=np.ones_like(r), where=r > 0)
    theta = np.arccos(np.clip(cos_theta, -1.0, 1.0))
    phi = np.arctan2(y, x)
    return r, theta, phi


def spherical_to_cartesian(r, theta, phi) -> np.ndarray:
    r = np.asarray(r, dtype=float)
    sin_theta = np.sin(theta)
    return np.stack((r * sin_theta * np.cos(phi), r * sin_theta * np.sin(phi), r * np.cos(theta)), axis=-1)


def real_spherical_harmonic(l: int, m: int, theta, phi) -> np.ndarray:
    theta = np.asarray(theta, dtype=float)
    phi = np.asarray(phi, dtype=float)
    m = int(m)
    if l < 0 or abs(m) > l:
        return np.zeros(np.broadcast(theta, phi).shape)
    m_abs = abs(m)
    norm = sqrt((2 * l + 1) / (4 * pi) / _factorial_ratio(l + m_abs, l - m_abs))
    if m != 0:
        norm *= sqrt(2.0)
    # (-1)^|m| strips the Condon-Shortley phase so p_x points along +x.
    legendre = (-1) ** m_abs * associated_legendre(l, m_abs, np.cos(theta))
    if m > 0:
        azimuthal = np.cos(m * phi)
    elif m < 0:
        azimuthal = np.sin(m_abs * phi)
    else:
        azimuthal = np.ones_like(phi)
    return norm * legendre * azimuthal


def radial_wavefunction(atomic_number: int, n: int, l: int, r) -> np.ndarray:
    """Hydrogen-like R_nl(r) in atomic units (Bohr radius = 1)."""
    r = np.asarray(r, dtype=float)
    if n < 1 or l < 0 or l >= n or atomic_number < 1:
        return np.zeros_like(r)
    z = float(atomic_number)
    rho = 2.0 * z * r / n
    norm = sqrt((2.0 * z / n) ** 3 / (2 * n) / _factorial_ratio(n + l, n - l - 1))
    laguerre = associated_laguerre(n - l - 1, 2 * l + 1, rho)
    power = rho**l if l > 0 else 1.0
    return norm * power * np.exp(-rho / 2.0) * laguerre


class WaveFunctionEvaluator:
    """Closed-form hydrogen-like wavefunctions.

    Stateless apart from the memoized factorial ratios, so one instance may be
    shared freely. Invalid states evaluate to zero rather than raising so a
    sampler can treat them as contributing nothing.
    """

    def radial(self, state: QuantumState, r) -> np.ndarray:
        return radial_wavefunction(state.atomic_number, state.n, state.l, r)

    def angular(self, state: QuantumState, theta, phi) -> np.ndarray:
        if not state.is_valid:
            return np.zeros(np.broadcast(np.asarray(theta), np.asarray(phi)).shape)
        return real_spherical_harmonic(state.l, state.m, theta, phi)

    def amplitude(self, state: QuantumState, x, y, z) -> np.ndarray:
        r, theta, phi = cartesian_to_spherical(x, y, z)
        if not state.is_valid:
            return np.zeros_like(r)
        return self.radial(state, r) * self.angular(state, theta, phi)

    def density(self, state: QuantumState, x, y, z) -> np.ndarray:
        psi = self.amplitude(state, x, y, z)
        return psi * psi

    def amplitude_at(self, state: QuantumState, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        return self.amplitude(state, points[:, 0], points[:, 1], points[:, 2])

    def density_at(self, state: QuantumState, points: np.ndarray) -> np.ndarray:
        psi = self.amplitude_at(state, points)
        return psi * psi

    def energy(self, state: QuantumState) -> float:
        """Bound-state energy -Z^2 / (2 n^2) in Hartree."""
        state.validate()
        return -(state.atomic_number**2) / (2.0 * state.n**2)
