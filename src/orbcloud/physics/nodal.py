from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from math import acos, pi, sqrt, tan

import numpy as np

from orbcloud.physics.wavefunctions import associated_legendre, radial_wavefunction
from orbcloud.quantum import QuantumState

ANGLE_EPSILON = 1e-3


@dataclass(frozen=True)
class NodalSphere:
    radius: float


@dataclass(frozen=True)
class NodalPlane:
    rotation: tuple[float, float, float]


@dataclass(frozen=True)
class NodalCone:
    rotation: tuple[float, float, float]
    position: tuple[float, float, float]
    height: float
    radius: float


@dataclass
class NodalConfiguration:
    spheres: list[NodalSphere] = field(default_factory=list)
    planes: list[NodalPlane] = field(default_factory=list)
    cones: list[NodalCone] = field(default_factory=list)


@dataclass(frozen=True)
class NodalSurfaceData:
    radial_nodes: np.ndarray
    cone_angles: np.ndarray
    phi_angles: np.ndarray
    include_horizontal_plane: bool


# Plane rotations are Euler angles (x, y, z) composed as Rx @ Ry @ Rz; identity is
# the z = 0 plane and (pi/2, phi, 0) is the vertical plane through azimuth phi.
_HALF = pi / 2


def azimuthal_node_angles(m: int) -> list[float]:
    """Azimuths of the vertical nodal planes of the real harmonic with order m."""
    if m > 0:
        return [(k + 0.5) * pi / m for k in range(m)]
    if m < 0:
        return [k * pi / abs(m) for k in range(abs(m))]
    return []


def _vertical_planes(m: int) -> tuple[tuple[float, float, float], ...]:
    return tuple((_HALF, phi, 0.0) for phi in azimuthal_node_angles(m))


_PLANE_TABLE: dict[tuple[int, int], tuple[tuple[float, float, float], ...]] = {
    (1, 0): ((0.0, 0.0, 0.0),),
    (1, 1): ((0.0, _HALF, 0.0),),
    (1, -1): ((_HALF, 0.0, 0.0),),
    (2, 1): ((0.0, 0.0, 0.0), (0.0, _HALF, 0.0)),
    (2, -1): ((0.0, 0.0, 0.0), (_HALF, 0.0, 0.0)),
    (2, 2): _vertical_planes(2),
    (2, -2): _vertical_planes(-2),
    (3, 0): ((0.0, 0.0, 0.0), (pi / 3, 0.0, 0.0), (-pi / 3, 0.0, 0.0)),
    (3, 1): ((0.0, _HALF, 0.0), (0.0, _HALF + pi / 6, 0.0), (0.0, _HALF - pi / 6, 0.0)),
    (3, -1): ((_HALF, 0.0, 0.0), (_HALF + pi / 6, 0.0, 0.0), (_HALF - pi / 6, 0.0, 0.0)),
    (3, 2): ((0.0, 0.0, 0.0), *_vertical_planes(2)),
    (3, -2): ((0.0, 0.0, 0.0), *_vertical_planes(-2)),
    (3, 3): ((0.0, _HALF, 0.0), (0.0, _HALF + pi / 3, 0.0), (0.0, _HALF - pi / 3, 0.0)),
    (3, -3): ((_HALF, 0.0, 0.0), (_HALF + pi / 3, 0.0, 0.0), (_HALF - pi / 3, 0.0, 0.0)),
}


def nodal_configuration(state: QuantumState, extent: float) -> NodalConfiguration:
    """Renderer-facing nodal geometry from a fixed (l, m) lookup."""
    config = NodalConfiguration()
    if not state.is_valid:
        return config
    radial_nodes = state.radial_node_count
    for i in range(1, radial_nodes + 1):
        config.spheres.append(NodalSphere(radius=extent * i / (radial_nodes + 1)))

    l, m = state.l, state.m
    if l == 0:
        return config
    if (l, m) == (2, 0):
        angle = acos(1 / sqrt(3))
        height = extent * 1.5
        radius = height * tan(angle)
        config.cones.append(NodalCone((0.0, 0.0, 0.0), (0.0, height / 2, 0.0), height, radius))
        config.cones.append(NodalCone((0.0, 0.0, pi), (0.0, -height / 2, 0.0), height, radius))
        return config
    rotations = _PLANE_TABLE.get((l, m))
    if rotations is None:
        count = 3 if l == 3 else max(3, min(l, 4))
        rotations = tuple((_HALF, i * pi / count, 0.0) for i in range(count))
    config.planes.extend(NodalPlane(rotation) for rotation in rotations)
    return config


def _bisect(fn: Callable[[float], float], left: float, right: float, f_left: float) -> float:
    for _ in range(40):
        mid = 0.5 * (left + right)
        f_mid = fn(mid)
        if abs(f_mid) < 1e-6 or abs(right - left) < 1e-3:
            return mid
        if f_left * f_mid <= 0:
            right = mid
        else:
            left, f_left = mid, f_mid
    return 0.5 * (left + right)


def _sign_change_roots(fn: Callable[[float], float], grid: np.ndarray, values: np.ndarray) -> list[float]:
    """Roots between consecutive nonzero samples of opposite sign.

    Exact zeros count only when the sign flips across them, so an underflowed
    tail of zeros is not reported.
    """
    roots: list[float] = []
    previous = -1
    for i in range(len(grid)):
        value = values[i]
        if not np.isfinite(value) or value == 0:
            continue
        if previous >= 0 and np.sign(values[previous]) != np.sign(value):
            if i - previous == 1:
                roots.append(_bisect(fn, float(grid[previous]), float(grid[i]), float(values[previous])))
            else:
                roots.append(0.5 * float(grid[previous + 1] + grid[i - 1]))
        previous = i
    return roots


def radial_node_radii(state: QuantumState, max_radius: float, samples: int = 2048) -> np.ndarray:
    """Radii where R_nl changes sign, found by bracketing then bisection."""
    z, n, l = state.atomic_number, state.n, state.l

    def evaluate(r: float) -> float:
        return float(radial_wavefunction(z, n, l, r))

    def radial_grid(radius: float) -> np.ndarray:
        return np.concatenate(([1e-4], np.linspace(radius / samples, radius, samples)))

    grid = radial_grid(max_radius)
    values = radial_wavefunction(z, n, l, grid)
    # Refine over the span where R_nl has not underflowed to zero.
    nonzero = np.flatnonzero(np.isfinite(values) & (values != 0))
    if len(nonzero) and nonzero[-1] < len(grid) - 1:
        grid = radial_grid(float(grid[nonzero[-1] + 1]))
        values = radial_wavefunction(z, n, l, grid)
    return np.asarray(_sign_change_roots(evaluate, grid, values), dtype=np.float32)


def legendre_roots(l: int, m_abs: int, samples: int = 4096) -> list[float]:
    if l == 0:
        return []

    def evaluate(x: float) -> float:
        return float(associated_legendre(l, m_abs, x))

    grid = np.linspace(-1.0, 1.0, samples + 1)
    grid[0] += 1e-5
    values = associated_legendre(l, m_abs, grid)
    filtered: list[float] = []
    for root in sorted(_sign_change_roots(evaluate, grid, values)):
        if abs(root + 1) < ANGLE_EPSILON or abs(root - 1) < ANGLE_EPSILON:
            continue
        if all(abs(existing - root) > ANGLE_EPSILON for existing in filtered):
            filtered.append(root)
    return filtered


def nodal_surface_data(state: QuantumState, extent: float) -> NodalSurfaceData:
    """Exact nodal loci: radial node radii, polar cone angles and azimuthal planes."""
    empty = np.zeros(0, dtype=np.float32)
    if not state.is_valid:
        return NodalSurfaceData(empty, empty, empty, False)
    radial_nodes = radial_node_radii(state, extent * 1.25)
    if state.l == 0:
        return NodalSurfaceData(radial_nodes, empty, empty, False)

    cone_angles: list[float] = []
    include_horizontal_plane = False
    for root in legendre_roots(state.l, abs(state.m)):
        theta = acos(min(1.0, max(-1.0, root)))
        folded = pi - theta if theta > pi / 2 else theta
        if folded < ANGLE_EPSILON:
            continue
        if abs(folded - pi / 2) < ANGLE_EPSILON:
            include_horizontal_plane = True
            continue
        if all(abs(existing - folded) > ANGLE_EPSILON for existing in cone_angles):
            cone_angles.append(folded)

    phi_angles = azimuthal_node_angles(state.m)
    return NodalSurfaceData(
        radial_nodes=radial_nodes,
        cone_angles=np.asarray(cone_angles, dtype=np.float32),
        phi_angles=np.asarray(phi_angles, dtype=np.float32),
        include_horizontal_plane=include_horizontal_plane,
    )


class NodalSurfaceCalculator:
    def configuration(self, state: QuantumState, extent: float) -> NodalConfiguration:
        return nodal_configuration(state, extent)

    def surface_data(self, state: QuantumState, extent: float) -> NodalSurfaceData:
        return nodal_surface_data(state, extent)
