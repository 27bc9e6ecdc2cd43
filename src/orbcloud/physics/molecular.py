from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from math import exp, sqrt

import numpy as np

from orbcloud.cache import LRUStore
from orbcloud.physics.sampling import ParticleSampler, draw_points
from orbcloud.physics.wavefunctions import WaveFunctionEvaluator
from orbcloud.quantum import QuantumState
from orbcloud.theming.colormaps import phase_colors
from orbcloud.theming.palette import theme_mode

logger = logging.getLogger(__name__)

ORBITAL_TYPES = ("sigma", "sigma*")
_TYPE_ALIASES = {"bonding": "sigma", "antibonding": "sigma*", "sigma": "sigma", "sigma*": "sigma*"}
ANTIBONDING_FLOOR = 1e-6
OVERLAP_GRID = 64
MAX_ROUNDS = 12


def normalize_orbital_type(orbital_type: str) -> str:
    try:
        return _TYPE_ALIASES[orbital_type.lower()]
    except KeyError:
        raise ValueError(f"Unknown molecular orbital type {orbital_type!r}; expected one of {ORBITAL_TYPES}.") from None


def bond_centers(bond_length: float) -> tuple[np.ndarray, np.ndarray]:
    half = 0.5 * float(bond_length)
    return np.array([-half, 0.0, 0.0]), np.array([half, 0.0, 0.0])


def overlap_1s(bond_length: float, atomic_number: int = 1) -> float:
    """Closed-form 1s-1s overlap S = e^{-ZR}(1 + ZR + (ZR)^2/3)."""
    zr = atomic_number * abs(float(bond_length))
    return exp(-zr) * (1.0 + zr + zr * zr / 3.0)


def numeric_overlap(
    evaluator: WaveFunctionEvaluator,
    state: QuantumState,
    bond_length: float,
    extent: float,
    resolution: int = OVERLAP_GRID,
) -> float:
    """Grid quadrature of <psi_A|psi_B>, divided by the grid norms of each center."""
    center_a, center_b = bond_centers(bond_length)
    half_x = extent + abs(bond_length) / 2
    xs = np.linspace(-half_x, half_x, resolution)
    ys = np.linspace(-extent, extent, resolution)
    x, y, z = np.meshgrid(xs, ys, ys, indexing="ij")
    psi_a = evaluator.amplitude(state, x - center_a[0], y, z)
    psi_b = evaluator.amplitude(state, x - center_b[0], y, z)
    norm = sqrt(float(np.sum(psi_a * psi_a)) * float(np.sum(psi_b * psi_b)))
    if norm <= 0:
        return 0.0
    return float(np.clip(np.sum(psi_a * psi_b) / norm, -1.0, 1.0))


def normalization_constant(overlap: float, orbital_type: str) -> float:
    if normalize_orbital_type(orbital_type) == "sigma":
        return 1.0 / sqrt(2.0 + 2.0 * overlap)
    return 1.0 / sqrt(max(2.0 - 2.0 * overlap, ANTIBONDING_FLOOR))


@dataclass(frozen=True)
class MolecularMetadata:
    bond_length: float
    orbital_type: str
    theme: str
    overlap: float
    normalization: float
    amplitude_scale: float
    particle_count: int


@dataclass
class MolecularOrbitalSample:
    positions: np.ndarray
    colors: np.ndarray
    base_positions: np.ndarray
    all_valid_positions: np.ndarray
    amplitudes: np.ndarray
    metadata: MolecularMetadata

    def copy(self) -> MolecularOrbitalSample:
        return MolecularOrbitalSample(
            positions=self.positions.copy(),
            colors=self.colors.copy(),
            base_positions=self.base_positions.copy(),
            all_valid_positions=self.all_valid_positions.copy(),
            amplitudes=self.amplitudes.copy(),
            metadata=replace(self.metadata),
        )


def fallback_sample(count: int, bond_length: float, orbital_type: str, theme: str) -> MolecularOrbitalSample:
    zeros = np.zeros((max(count, 0), 3), dtype=np.float32)
    return MolecularOrbitalSample(
        positions=zeros,
        colors=zeros.copy(),
        base_positions=zeros.copy(),
        all_valid_positions=zeros.copy(),
        amplitudes=np.zeros(len(zeros), dtype=np.float32),
        metadata=MolecularMetadata(
            bond_length=float(bond_length),
            orbital_type=orbital_type,
            theme=theme,
            overlap=0.0,
            normalization=0.0,
            amplitude_scale=0.0,
            particle_count=len(zeros),
        ),
    )


class MolecularOrbitalSampler:
    """Two-center LCAO sampling built on the atomic inverse-CDF draw."""

    def __init__(self, sampler: ParticleSampler | None = None) -> None:
        self.sampler = sampler or ParticleSampler()
        self.config = self.sampler.config
        self.evaluator = self.sampler.distributions.evaluator
        self._samples: LRUStore[tuple, MolecularOrbitalSample] = LRUStore(self.config.molecular.cache_limit)
        self._overlaps: LRUStore[tuple, float] = LRUStore(self.config.cache.distribution_capacity)

    @property
    def rng(self) -> np.random.Generator:
        return self.sampler.rng

    def overlap(self, state: QuantumState, bond_length: float) -> float:
        if (state.n, state.l, state.m) == (1, 0, 0):
            return overlap_1s(bond_length, state.atomic_number)
        key = (state.orbital_key, round(float(bond_length), 3))
        cached = self._overlaps.get(key)
        if cached is None:
            extent = self.sampler.distributions.get(state).extent
            cached = numeric_overlap(self.evaluator, state, bond_length, extent)
            self._overlaps.put(key, cached)
        return cached

    def normalization(self, state: QuantumState, bond_length: float, orbital_type: str) -> float:
        return normalization_constant(self.overlap(state, bond_length), orbital_type)

    def amplitude_at(self, state: QuantumState, bond_length: float, orbital_type: str, points: np.ndarray) -> np.ndarray:
        orbital_type = normalize_orbital_type(orbital_type)
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        center_a, center_b = bond_centers(bond_length)
        psi_a = self.evaluator.amplitude_at(state, points - center_a)
        psi_b = self.evaluator.amplitude_at(state, points - center_b)
        sign = 1.0 if orbital_type == "sigma" else -1.0
        return self.normalization(state, bond_length, orbital_type) * (psi_a + sign * psi_b)

    def density_at(self, state: QuantumState, bond_length: float, orbital_type: str, points: np.ndarray) -> np.ndarray:
        psi = self.amplitude_at(state, bond_length, orbital_type, points)
        return psi * psi

    def _accept(self, state: QuantumState, bond_length: float, sign: float, batch: int) -> np.ndarray:
        distribution = self.sampler.distributions.get(state)
        center_a, center_b = bond_centers(bond_length)
        half = batch // 2
        proposals = np.vstack(
            (
                draw_points(distribution, half, self.rng) + center_a,
                draw_points(distribution, batch - half, self.rng) + center_b,
            )
        ).astype(float)
        psi_a = self.evaluator.amplitude_at(state, proposals - center_a)
        psi_b = self.evaluator.amplitude_at(state, proposals - center_b)
        combined = psi_a + sign * psi_b
        mixture = 2.0 * (psi_a * psi_a + psi_b * psi_b)
        with np.errstate(divide="ignore", invalid="ignore"):
            acceptance = np.where(mixture > 0, combined * combined / mixture, 0.0)
        keep = self.rng.random(len(proposals)) < acceptance
        return proposals[keep]

    def sample(
        self,
        state: QuantumState,
        bond_length: float,
        orbital_type: str = "sigma",
        count: int = 20000,
        is_dark: bool = True,
    ) -> MolecularOrbitalSample:
        orbital_type = normalize_orbital_type(orbital_type)
        count = max(int(count), 0)
        theme = theme_mode(is_dark)
        if not state.is_valid:
            logger.error("Invalid quantum state for molecular sampling: %s (s=%s)", state.label(), state.s)
            return fallback_sample(count, bond_length, orbital_type, theme)
        key = (state.atomic_number, state.n, state.l, state.m, orbital_type, theme, count, round(float(bond_length), 3))
        cached = self._samples.get(key)
        if cached is not None:
            logger.debug("Molecular sample cache hit for %s %s", state.label(), orbital_type)
            return cached.copy()

        settings = self.config.molecular
        sign = 1.0 if orbital_type == "sigma" else -1.0
        batch = max(settings.min_pool, int(count * settings.pool_factor))
        accepted: list[np.ndarray] = []
        total = 0
        for _ in range(MAX_ROUNDS):
            if total >= count:
                break
            chunk = self._accept(state, bond_length, sign, batch)
            accepted.append(chunk)
            total += len(chunk)
        pool = np.vstack(accepted) if accepted else np.zeros((0, 3))
        if len(pool) < count:
            logger.warning(
                "Molecular sampler produced %d of %d requested points for %s %s at R=%.3f",
                len(pool),
                count,
                state.label(),
                orbital_type,
                bond_length,
            )

        if len(pool) == 0:
            positions = np.zeros((count, 3), dtype=np.float32)
        else:
            positions = pool[np.arange(count) % len(pool)].astype(np.float32)
        overlap = self.overlap(state, bond_length)
        raw = self.amplitude_at(state, bond_length, orbital_type, positions)
        scale = float(np.max(np.abs(raw))) if raw.size else 0.0
        amplitudes = (raw / scale if scale > 0 else np.zeros_like(raw)).astype(np.float32)

        result = MolecularOrbitalSample(
            positions=positions,
            colors=phase_colors(amplitudes, settings.colormap),
            base_positions=positions.copy(),
            all_valid_positions=pool.astype(np.float32),
            amplitudes=amplitudes,
            metadata=MolecularMetadata(
                bond_length=float(bond_length),
                orbital_type=orbital_type,
                theme=theme,
                overlap=overlap,
                normalization=normalization_constant(overlap, orbital_type),
                amplitude_scale=scale,
                particle_count=count,
            ),
        )
        self._samples.put(key, result)
        return result.copy()

    def clear(self) -> None:
        self._samples.clear()
        self._overlaps.clear()
