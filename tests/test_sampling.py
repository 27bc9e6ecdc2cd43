from __future__ import annotations

import sys
import unittest
from pathlib import Path

import numpy as np

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from orbcloud.config import EngineConfig
from orbcloud.physics.distribution import DistributionCache
from orbcloud.physics.sampling import ParticleSampler, SamplePool, sample_from_cdf
from orbcloud.quantum import QuantumState
from orbcloud.theming.palette import orbital_base_color


class InverseCdfTests(unittest.TestCase):
    def test_linear_interpolation(self) -> None:
        values = np.array([0.0, 1.0, 2.0])
        cdf = np.array([0.0, 0.5, 1.0])
        drawn = sample_from_cdf(values, cdf, np.array([0.0, 0.25, 0.5, 0.75, 1.0]))
        np.testing.assert_allclose(drawn, [0.0, 0.5, 1.0, 1.5, 2.0])

    def test_flat_segments_do_not_divide_by_zero(self) -> None:
        values = np.array([0.0, 1.0, 2.0, 3.0])
        cdf = np.array([0.0, 0.5, 0.5, 1.0])
        drawn = sample_from_cdf(values, cdf, np.linspace(0.0, 1.0, 11))
        self.assertTrue(np.all(np.isfinite(drawn)))
        self.assertTrue(np.all((drawn >= 0.0) & (drawn <= 3.0)))

    def test_uniform_draws_follow_distribution(self) -> None:
        values = np.linspace(0.0, 1.0, 101)
        cdf = values**2
        drawn = sample_from_cdf(values, cdf, np.random.default_rng(0).random(20000))
        # Density 2x on [0, 1] has mean 2/3.
        self.assertAlmostEqual(float(drawn.mean()), 2 / 3, places=2)


class SamplePoolTests(unittest.TestCase):
    def test_freshness(self) -> None:
        pool = SamplePool(points=np.zeros((115, 3), dtype=np.float32), extent=10.0, max_probability=0.5)
        self.assertTrue(pool.is_fresh(115, 10.0, 0.5))
        self.assertFalse(pool.is_fresh(116, 10.0, 0.5))
        self.assertFalse(pool.is_fresh(100, 10.01, 0.5))
        self.assertTrue(pool.is_fresh(100, 10.0, 0.505))
        self.assertFalse(pool.is_fresh(100, 10.0, 0.52))


class ParticleSamplerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sampler = ParticleSampler(rng=np.random.default_rng(1234))

    def test_buffer_shapes_and_types(self) -> None:
        result = self.sampler.sample(QuantumState(2, 1, 0), 500)
        for buffer in (result.positions, result.colors, result.base_positions):
            self.assertEqual(buffer.shape, (500, 3))
            self.assertEqual(buffer.dtype, np.float32)
        self.assertEqual(result.all_valid_positions.shape, (575, 3))
        np.testing.assert_array_equal(result.positions, result.base_positions)
        self.assertIsNot(result.positions, result.base_positions)

    def test_points_stay_inside_extent(self) -> None:
        for state in (QuantumState(1, 0, 0), QuantumState(3, 2, -2), QuantumState(4, 3, 1, atomic_number=3)):
            result = self.sampler.sample(state, 2000)
            radii = np.linalg.norm(result.all_valid_positions, axis=1)
            self.assertLessEqual(float(radii.max()), result.extent * (1 + 1e-5))

    def test_s_cloud_is_centred(self) -> None:
        result = self.sampler.sample(QuantumState(1, 0, 0), 20000)
        np.testing.assert_allclose(result.positions.mean(axis=0), np.zeros(3), atol=0.05)
        # <r> for hydrogen 1s is 1.5 bohr.
        self.assertAlmostEqual(float(np.linalg.norm(result.positions, axis=1).mean()), 1.5, delta=0.05)

    def test_pz_cloud_avoids_xy_plane(self) -> None:
        result = self.sampler.sample(QuantumState(2, 1, 0), 5000)
        z = np.abs(result.positions[:, 2])
        radii = np.linalg.norm(result.positions, axis=1)
        self.assertGreater(float(np.mean(z / radii)), 0.6)

    def test_pool_is_reused_on_cache_hit(self) -> None:
        state = QuantumState(3, 1, 1)
        first = self.sampler.sample(state, 1000)
        second = self.sampler.sample(state, 1000)
        np.testing.assert_array_equal(first.all_valid_positions, second.all_valid_positions)
        smaller = self.sampler.sample(state, 200)
        np.testing.assert_array_equal(first.all_valid_positions, smaller.all_valid_positions)

    def test_larger_request_rebuilds_pool(self) -> None:
        state = QuantumState(2, 0, 0)
        small = self.sampler.sample(state, 100)
        large = self.sampler.sample(state, 1000)
        self.assertEqual(len(small.all_valid_positions), 115)
        self.assertEqual(len(large.all_valid_positions), 1150)

    def test_results_are_independent_copies(self) -> None:
        state = QuantumState(2, 1, -1)
        first = self.sampler.sample(state, 300)
        first.all_valid_positions[:] = 99.0
        first.positions[:] = 99.0
        second = self.sampler.sample(state, 300)
        self.assertLess(float(np.abs(second.all_valid_positions).max()), 99.0)

    def test_colors_are_jittered_base_color(self) -> None:
        result = self.sampler.sample(QuantumState(3, 2, 0), 400, is_dark=False)
        base = orbital_base_color(2, is_dark=False)
        ratio = result.colors / np.where(base > 0, base, 1.0)
        self.assertTrue(np.all(ratio >= 0.85 - 1e-6))
        self.assertTrue(np.all(ratio <= 1.0 + 1e-6))

    def test_invalid_state_returns_fallback(self) -> None:
        with self.assertLogs("orbcloud.physics.sampling", level="ERROR"):
            result = self.sampler.sample(QuantumState(2, 2, 0), 50)
        self.assertEqual(result.positions.shape, (50, 3))
        self.assertFalse(result.positions.any())
        self.assertFalse(result.colors.any())
        self.assertEqual(result.extent, 3.0)
        self.assertEqual(result.max_probability, 1.0)

    def test_bad_spin_returns_fallback(self) -> None:
        with self.assertLogs("orbcloud.physics.sampling", level="ERROR"):
            result = self.sampler.sample(QuantumState(2, 1, 0, s=0.0), 10)
        self.assertEqual(result.positions.shape, (10, 3))
        self.assertFalse(result.positions.any())
        self.assertEqual(result.extent, 3.0)

    def test_shared_distribution_cache(self) -> None:
        distributions = DistributionCache(config=EngineConfig())
        sampler = ParticleSampler(distributions, rng=np.random.default_rng(5))
        sampler.sample(QuantumState(2, 1, 0), 10)
        self.assertIn(QuantumState(2, 1, 0), distributions)
        sampler.clear()
        self.assertEqual(sampler.stats()["pools"]["size"], 0)


if __name__ == "__main__":
    unittest.main()
