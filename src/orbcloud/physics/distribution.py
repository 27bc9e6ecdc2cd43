from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from orbcloud.cache import LRUStore
from orbcloud.config import EngineConfig
from orbcloud.physics.angular import AngularDistribution, build_angular_distribution
from orbcloud.physics.radial import RadialDistribution, build_radial_distribution, heuristic_extent
from orbcloud.physics.wavefunctions import WaveFunctionEvaluator, spherical_to_cartesian
from orbcloud.quantum import QuantumState

logger = logging.getLogger(__name__)

PROBABILITY_EPSILON = 1e-10
COARSE_RADII = 16
COARSE_THETAS = 9
COARSE_PHIS = 4


@dataclass(frozen=True)
class OrbitalDistribution:
    state: QuantumState
    radial: RadialDistribution
    angular: AngularDistribution
    extent: float
    max_probability: float
    analytic_max: float
    observed_max: float


def _spread_values(values: np.ndarray, count: int) -> np.ndarray:
    if len(values) == 0:
        return values
    indices = np.unique(np.linspace(0, len(values) - 1, count).round().astype(int))
    return values[indices]


def coarse_max_density(
    evaluator: WaveFunctionEvaluator,
    state: QuantumState,
    radial: RadialDistribution,
    angular: AngularDistribution,
) -> float:
    """Coarse search for the largest density over a few hundred (r, theta, phi) points."""
    radii = _spread_values(radial.radii, COARSE_RADII)
    thetas = _spread_values(angular.theta_values, COARSE_THETAS)
    phis = _spread_values(angular.phi_values, COARSE_PHIS) if angular.has_phi_table else np.zeros(1)
    r, theta, phi = np.meshgrid(radii, thetas, phis, indexing="ij")
    points = spherical_to_cartesian(r.ravel(), theta.ravel(), phi.ravel())
    density = evaluator.density_at(state, points)
    observed = float(np.max(density)) if density.size else 0.0
    return observed if np.isfinite(observed) else 0.0


def assemble_distribution(
    evaluator: WaveFunctionEvaluator,
    state: QuantumState,
    radial: RadialDistribution,
    angular: AngularDistribution,
    config: EngineConfig,
) -> OrbitalDistribution:
    analytic = radial.peak_amplitude * angular.peak_amplitude
    if not np.isfinite(analytic) or analytic <= 0:
        analytic = 0.0
    observed = coarse_max_density(evaluator, state, radial, angular)
    max_probability = max(analytic, observed)
    if not np.isfinite(max_probability) or max_probability <= 0:
        max_probability = PROBABILITY_EPSILON

    extent = max(
        radial.max_radius + radial.step * 4,
        radial.max_radius * 1.08,
        heuristic_extent(state.n, state.atomic_number) * config.extent_scale(),
    )
    return OrbitalDistribution(
        state=state,
        radial=radial,
        angular=angular,
        extent=float(extent),
        max_probability=float(max_probability),
        analytic_max=float(analytic),
        observed_max=float(observed),
    )


class DistributionCache:
    """Radial, angular and combined distributions keyed by exact quantum numbers."""

    def __init__(self, evaluator: WaveFunctionEvaluator | None = None, config: EngineConfig | None = None) -> None:
        self.evaluator = evaluator or WaveFunctionEvaluator()
        self.config = config or EngineConfig()
        capacity = self.config.cache.distribution_capacity
        self._radial: LRUStore[tuple, RadialDistribution] = LRUStore(capacity)
        self._angular: LRUStore[tuple, AngularDistribution] = LRUStore(capacity)
        self._orbital: LRUStore[tuple, OrbitalDistribution] = LRUStore(capacity)

    def radial(self, state: QuantumState) -> RadialDistribution:
        return self._radial.get_or_create(
            state.radial_key,
            lambda: build_radial_distribution(state.atomic_number, state.n, state.l, self.config.radial),
        )

    def angular(self, state: QuantumState) -> AngularDistribution:
        return self._angular.get_or_create(state.angular_key, lambda: build_angular_distribution(state.l, state.m))

    def get(self, state: QuantumState) -> OrbitalDistribution:
        state.validate()
        key = state.orbital_key
        cached = self._orbital.get(key)
        if cached is not None:
            return cached
        logger.debug("Building orbital distribution for %s", state.label())
        distribution = assemble_distribution(
            self.evaluator,
            state,
            self.radial(state),
            self.angular(state),
            self.config,
        )
        if distribution.observed_max > distribution.analytic_max * 1.05:
            logger.debug(
                "Coarse maximum %.4g exceeds analytic estimate %.4g for %s",
                distribution.observed_max,
                distribution.analytic_max,
                state.label(),
            )
        self._orbital.put(key, distribution)
        return distribution

    def __contains__(self, state: object) -> bool:
        return isinstance(state, QuantumState) and state.orbital_key in self._orbital

    def clear(self) -> None:
        self._radial.clear()
        self._angular.clear()
        self._orbital.clear()

    def stats(self) -> dict:
        return {
            "radial": self._radial.stats(),
            "angular": self._angular.stats(),
            "orbital": self._orbital.stats(),
        }
