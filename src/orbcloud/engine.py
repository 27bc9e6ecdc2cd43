from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from orbcloud.cache import LRUStore
from orbcloud.config import EngineConfig, load_config
from orbcloud.physics.density_field import DensityFieldBuilder, DensityFieldGrid
from orbcloud.physics.distribution import DistributionCache, OrbitalDistribution
from orbcloud.physics.molecular import MolecularOrbitalSample, MolecularOrbitalSampler
from orbcloud.physics.nodal import NodalSurfaceCalculator, NodalSurfaceData
from orbcloud.physics.sampling import OrbitalSamplingResult, ParticleSampler
from orbcloud.physics.wavefunctions import WaveFunctionEvaluator
from orbcloud.quantum import QuantumState

logger = logging.getLogger(__name__)


class SamplingEngine:
    """One private set of caches and samplers; owned by a single worker thread."""

    def __init__(
        self,
        evaluator: WaveFunctionEvaluator | None = None,
        config: EngineConfig | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.evaluator = evaluator or WaveFunctionEvaluator()
        self.distributions = DistributionCache(self.evaluator, self.config)
        self.sampler = ParticleSampler(self.distributions, self.config, rng)
        self.density = DensityFieldBuilder(self.evaluator, self.config)
        self.nodal = NodalSurfaceCalculator()
        self.molecular = MolecularOrbitalSampler(self.sampler)
        self._nodal_data: LRUStore[tuple, NodalSurfaceData] = LRUStore(self.config.cache.nodal_capacity)

    @classmethod
    def from_config_file(cls, path: str | Path | None = None, **kwargs) -> SamplingEngine:
        return cls(config=load_config(path), **kwargs)

    def distribution(self, state: QuantumState) -> OrbitalDistribution:
        return self.distributions.get(state)

    def sample(self, state: QuantumState, count: int, is_dark: bool = True) -> OrbitalSamplingResult:
        result = self.sampler.sample(state, count, is_dark)
        if state.is_valid and self.config.density.include_in_sample:
            result.density_field = self.density.build(
                state,
                result.extent,
                result.max_probability,
                self.config.density.sample_resolution,
            )
        return result

    def outline_field(
        self,
        state: QuantumState,
        extent: float,
        max_probability: float,
        resolution: int | None = None,
    ) -> DensityFieldGrid:
        return self.density.build(state, extent, max_probability, resolution or self.config.density.outline_resolution)

    def nodal_data(self, state: QuantumState, extent: float) -> NodalSurfaceData:
        if not state.is_valid:
            return self.nodal.surface_data(state, extent)
        key = (state.orbital_key, round(float(extent), 3))
        return self._nodal_data.get_or_create(key, lambda: self.nodal.surface_data(state, extent))

    def sample_molecular(
        self,
        state: QuantumState,
        bond_length: float,
        orbital_type: str = "sigma",
        count: int = 20000,
        is_dark: bool = True,
    ) -> MolecularOrbitalSample:
        return self.molecular.sample(state, bond_length, orbital_type, count, is_dark)

    def clear_caches(self) -> None:
        logger.debug("Clearing sampling engine caches")
        self.distributions.clear()
        self.sampler.clear()
        self.density.clear()
        self.molecular.clear()
        self._nodal_data.clear()

    def stats(self) -> dict:
        return {
            "distributions": self.distributions.stats(),
            "sampler": self.sampler.stats(),
            "density": self.density.stats(),
            "nodal": self._nodal_data.stats(),
        }
