from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pyvista as pv

from orbcloud.cache import LRUStore
from orbcloud.config import DensitySettings, EngineConfig
from orbcloud.physics.wavefunctions import WaveFunctionEvaluator
from orbcloud.quantum import DistributionFlavor, QuantumState

logger = logging.getLogger(__name__)

DENSITY_EPSILON = 1e-10
ISO_FRACTION = 0.45
ISO_MIN = 0.05
ISO_MAX = 0.36


@dataclass(frozen=True)
class DensityFieldGrid:
    resolution: int
    field: np.ndarray  # (res, res, res) indexed [z, y, x]
    max_sample: float
    max_probability: float
    extent: float
    iso_level: float

    @property
    def spacing(self) -> float:
        return 2 * self.extent / max(self.resolution - 1, 1)

    def matches(self, extent: float, max_probability: float, extent_tolerance: float, probability_tolerance: float) -> bool:
        return abs(self.extent - extent) < extent_tolerance and abs(self.max_probability - max_probability) <= max(
            1e-12, abs(max_probability) * probability_tolerance
        )


def resolve_density_resolution(
    requested: int | None,
    flavor: DistributionFlavor = "exact",
    from_grid: bool = False,
    settings: DensitySettings | None = None,
) -> int:
    """Grid side length after the flavor multiplier, floor and cap."""
    settings = settings or DensitySettings()
    base = int(requested) if requested else settings.outline_resolution
    stylized = flavor == "stylized"
    if from_grid:
        multiplier = settings.stylized_multiplier if stylized else settings.exact_multiplier
        base = int(round(base * multiplier))
    cap = settings.stylized_cap if stylized else settings.exact_cap
    return int(min(max(base, settings.floor), cap))


def iso_level(max_sample: float) -> float:
    return float(min(max(max_sample * ISO_FRACTION, ISO_MIN), ISO_MAX))


def grid_axis(extent: float, resolution: int) -> np.ndarray:
    return np.linspace(-extent, extent, resolution)


def compute_density_field(
    evaluator: WaveFunctionEvaluator,
    state: QuantumState,
    extent: float,
    max_probability: float,
    resolution: int,
) -> DensityFieldGrid:
    axis = grid_axis(extent, resolution)
    y, x = np.meshgrid(axis, axis, indexing="ij")
    field = np.empty((resolution, resolution, resolution), dtype=np.float32)
    scale = 1.0 / max(abs(max_probability), DENSITY_EPSILON)
    max_sample = 0.0
    # One z slab at a time keeps peak memory at res^2 doubles.
    for k, z_value in enumerate(axis):
        z = np.full_like(x, z_value)
        slab = np.minimum(evaluator.density(state, x, y, z) * scale, 1.0)
        field[k] = slab
        max_sample = max(max_sample, float(slab.max()))
    return DensityFieldGrid(
        resolution=resolution,
        field=field,
        max_sample=max_sample,
        max_probability=float(max_probability),
        extent=float(extent),
        iso_level=iso_level(max_sample),
    )


def to_image_data(grid: DensityFieldGrid, name: str = "density") -> pv.ImageData:
    res = grid.resolution
    spacing = grid.spacing
    image = pv.ImageData(
        dimensions=(res, res, res),
        spacing=(spacing, spacing, spacing),
        origin=(-grid.extent, -grid.extent, -grid.extent),
    )
    # [z, y, x] in C order puts x fastest, which is the VTK point order.
    image[name] = grid.field.ravel()
    return image


def extract_isosurface(grid: DensityFieldGrid, level: float | None = None) -> pv.PolyData:
    image = to_image_data(grid)
    value = grid.iso_level if level is None else float(level)
    return image.contour(isosurfaces=[value], scalars="density")


class DensityFieldBuilder:
    """Builds normalized density grids and keeps a per-resolution map for each state."""

    def __init__(self, evaluator: WaveFunctionEvaluator | None = None, config: EngineConfig | None = None) -> None:
        self.evaluator = evaluator or WaveFunctionEvaluator()
        self.config = config or EngineConfig()
        self._grids: LRUStore[tuple, dict[int, DensityFieldGrid]] = LRUStore(self.config.cache.density_capacity)

    def resolve_resolution(self, requested: int | None, from_grid: bool = False) -> int:
        return resolve_density_resolution(requested, self.config.flavor, from_grid, self.config.density)

    def _cached(self, state: QuantumState, resolution: int, extent: float, max_probability: float) -> DensityFieldGrid | None:
        entries = self._grids.get(state.orbital_key)
        if not entries:
            return None
        tolerances = self.config.sampling
        for res in sorted(entries):
            if res < resolution:
                continue
            grid = entries[res]
            if grid.matches(extent, max_probability, tolerances.extent_tolerance, tolerances.probability_tolerance):
                return grid
        return None

    def build(
        self,
        state: QuantumState,
        extent: float,
        max_probability: float,
        resolution: int | None = None,
        from_grid: bool = False,
    ) -> DensityFieldGrid:
        state.validate()
        res = self.resolve_resolution(resolution, from_grid)
        cached = self._cached(state, res, extent, max_probability)
        if cached is not None:
            logger.debug("Density field cache hit for %s at %d^3", state.label(), cached.resolution)
            return cached
        logger.debug("Computing density field for %s at %d^3", state.label(), res)
        grid = compute_density_field(self.evaluator, state, extent, max_probability, res)
        entries = self._grids.peek(state.orbital_key)
        if entries is None:
            entries = {}
            self._grids.put(state.orbital_key, entries)
        entries[res] = grid
        return grid

    def isosurface(
        self,
        state: QuantumState,
        extent: float,
        max_probability: float,
        resolution: int | None = None,
    ) -> pv.PolyData:
        return extract_isosurface(self.build(state, extent, max_probability, resolution, from_grid=True))

    def clear(self) -> None:
        self._grids.clear()

    def stats(self) -> dict:
        return {"grids": self._grids.stats()}
