from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from orbcloud.cache import LRUStore
from orbcloud.config import EngineConfig
from orbcloud.physics.angular import TWO_PI
from orbcloud.physics.density_field import DensityFieldGrid
from orbcloud.physics.distribution import DistributionCache, OrbitalDistribution
from orbcloud.physics.nodal import NodalConfiguration, nodal_configuration
from orbcloud.physics.wavefunctions import spherical_to_cartesian
from orbcloud.quantum import QuantumState
from orbcloud.theming.palette import jittered_colors, orbital_base_color

logger = logging.getLogger(__name__)

CDF_EPSILON = 1e-6


@dataclass
class OrbitalSamplingResult:
    positions: np.ndarray
    colors: np.ndarray
    base_positions: np.ndarray
    all_valid_positions: np.ndarray
    extent: float
    max_probability: float
    nodal_config: NodalConfiguration = field(default_factory=NodalConfiguration)
    density_field: DensityFieldGrid | None = None

    def copy(self) -> OrbitalSamplingResult:
        return OrbitalSamplingResult(
            positions=self.positions.copy(),
            colors=self.colors.copy(),
            base_positions=self.base_positions.copy(),
            all_valid_positions=self.all_valid_positions.copy(),
            extent=self.extent,
            max_probability=self.max_probability,
            nodal_config=self.nodal_config,
            density_field=self.density_field,
        )


@dataclass(frozen=True)
class SamplePool:
    points: np.ndarray
    extent: float
    max_probability: float

    def __len__(self) -> int:
        return len(self.points)

    def is_fresh(
        self,
        required: int,
        extent: float,
        max_probability: float,
        extent_tolerance: float = 1e-3,
        probability_tolerance: float = 0.02,
    ) -> bool:
        return (
            len(self.points) >= required
            and abs(self.extent - extent) < extent_tolerance
            and abs(self.max_probability - max_probability) <= max(1e-12, max_probability * probability_tolerance)
        )


def sample_from_cdf(values: np.ndarray, cdf: np.ndarray, uniforms: np.ndarray) -> np.ndarray:
    """Inverse-transform lookup: bracket each uniform in the CDF and interpolate linearly."""
    uniforms = np.asarray(uniforms, dtype=float)
    if len(values) == 0 or len(cdf) == 0:
        return np.zeros_like(uniforms)
    idx = np.searchsorted(cdf, uniforms, side="left")
    idx = np.clip(idx, 0, len(cdf) - 1)
    previous = np.where(idx > 0, cdf[np.maximum(idx - 1, 0)], 0.0)
    span = np.maximum(cdf[idx] - previous, CDF_EPSILON)
    t = (uniforms - previous) / span
    v0 = values[np.maximum(idx - 1, 0)]
    v1 = values[idx]
    return v0 + (v1 - v0) * t


def draw_spherical(distribution: OrbitalDistribution, count: int, rng: np.random.Generator) -> np.ndarray:
    """Draw (r, theta, phi) triples from the radial and angular CDFs."""
    radial = distribution.radial
    angular = distribution.angular
    r = sample_from_cdf(radial.radii, radial.cdf, rng.random(count))
    theta = sample_from_cdf(angular.theta_values, angular.theta_cdf, rng.random(count))
    if angular.has_phi_table:
        phi = np.mod(sample_from_cdf(angular.phi_values, angular.phi_cdf, rng.random(count)), TWO_PI)
    else:
        phi = rng.random(count) * TWO_PI
    return np.column_stack((r, theta, phi))


def draw_points(distribution: OrbitalDistribution, count: int, rng: np.random.Generator) -> np.ndarray:
    spherical = draw_spherical(distribution, count, rng)
    points = spherical_to_cartesian(spherical[:, 0], spherical[:, 1], spherical[:, 2])
    return points.reshape(-1, 3).astype(np.float32)


def fallback_result(count: int, config: EngineConfig) -> OrbitalSamplingResult:
    zeros = np.zeros((max(count, 0), 3), dtype=np.float32)
    return OrbitalSamplingResult(
        positions=zeros,
        colors=zeros.copy(),
        base_positions=zeros.copy(),
        all_valid_positions=zeros.copy(),
        extent=config.sampling.fallback_extent,
        max_probability=config.sampling.fallback_max_probability,
    )


class ParticleSampler:
    """Draws particle clouds for a state, reusing an oversized pool between calls."""

    def __init__(
        self,
        distributions: DistributionCache | None = None,
        config: EngineConfig | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.config = config or (distributions.config if distributions else EngineConfig())
        self.distributions = distributions or DistributionCache(config=self.config)
        self.rng = rng or np.random.default_rng()
        self._pools: LRUStore[tuple, SamplePool] = LRUStore(self.config.cache.pool_capacity)

    def pool_size(self, count: int) -> int:
        # Small epsilon so 100 * 1.15 floors to 115 rather than 114.
        return max(count, int(np.floor(count * self.config.sampling.pool_oversample + 1e-9)))

    def pool_for(self, state: QuantumState, distribution: OrbitalDistribution, count: int) -> SamplePool:
        settings = self.config.sampling
        required = self.pool_size(count)
        cached = self._pools.get(state.orbital_key)
        if cached is not None and cached.is_fresh(
            required,
            distribution.extent,
            distribution.max_probability,
            settings.extent_tolerance,
            settings.probability_tolerance,
        ):
            return cached
        logger.debug("Rebuilding sample pool of %d points for %s", required, state.label())
        pool = SamplePool(
            points=draw_points(distribution, required, self.rng),
            extent=distribution.extent,
            max_probability=distribution.max_probability,
        )
        self._pools.put(state.orbital_key, pool)
        return pool

    def sample(self, state: QuantumState, count: int, is_dark: bool = True) -> OrbitalSamplingResult:
        count = max(int(count), 0)
        if not state.is_valid:
            logger.error(
                "Invalid quantum numbers n=%s, l=%s, m=%s, s=%s: must satisfy l < n, |m| <= l and s = +-1/2",
                state.n,
                state.l,
                state.m,
                state.s,
            )
            return fallback_result(count, self.config)

        distribution = self.distributions.get(state)
        pool = self.pool_for(state, distribution, count)
        pool_length = len(pool)
        if pool_length > count:
            indices = self.rng.integers(0, pool_length, size=count)
        else:
            indices = np.arange(count) % max(pool_length, 1)

        positions = pool.points[indices].copy()
        settings = self.config.sampling
        colors = jittered_colors(
            orbital_base_color(state.l, is_dark),
            count,
            self.rng,
            settings.jitter_min,
            settings.jitter_max,
        )
        return OrbitalSamplingResult(
            positions=positions,
            colors=colors,
            base_positions=positions.copy(),
            all_valid_positions=pool.points.copy(),
            extent=distribution.extent,
            max_probability=distribution.max_probability,
            nodal_config=nodal_configuration(state, distribution.extent),
        )

    def clear(self) -> None:
        self._pools.clear()

    def stats(self) -> dict:
        return {"pools": self._pools.stats()}
