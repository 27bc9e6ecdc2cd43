from __future__ import annotations

import sys
import unittest
from concurrent.futures import wait
from pathlib import Path

import numpy as np

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from orbcloud.config import load_config
from orbcloud.engine import SamplingEngine
from orbcloud.preloader import OrbitalPreloader
from orbcloud.quantum import QuantumState
from orbcloud.worker import OrbitalWorker


def _engine() -> SamplingEngine:
    return SamplingEngine(config=load_config(density={"include_in_sample": False}), rng=np.random.default_rng(3))


class OrbitalPreloaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.worker = OrbitalWorker(_engine).start()
        self.preloader = OrbitalPreloader(self.worker, capacity=10)

    def tearDown(self) -> None:
        self.worker.terminate()
        self.worker.join(5)

    def test_neighbourhood_is_preloaded(self) -> None:
        state = QuantumState(2, 1, 0)
        futures = self.preloader.preload_neighbourhood(state, 100)
        self.assertEqual(len(futures), 5)
        wait(futures, timeout=60)
        self.assertTrue(self.preloader.has(QuantumState(2, 1, 1), 100))
        self.assertTrue(self.preloader.has(QuantumState(1, 0, 0), 100))
        self.assertFalse(self.preloader.has(state, 100))
        self.assertFalse(self.preloader.has(QuantumState(2, 1, 1), 100, is_dark=False))

    def test_duplicate_preload_is_skipped(self) -> None:
        state = QuantumState(1, 0, 0)
        first = self.preloader.preload(state, 50)
        self.assertIsNotNone(first)
        self.assertIsNone(self.preloader.preload(state, 50))
        first.result(timeout=60)
        self.assertIsNone(self.preloader.preload(state, 50))

    def test_get_returns_copies(self) -> None:
        state = QuantumState(2, 0, 0)
        self.preloader.preload(state, 80).result(timeout=60)
        first = self.preloader.get(state, 80)
        first.positions[:] = 0.0
        second = self.preloader.get(state, 80)
        self.assertTrue(np.any(second.positions != 0.0))
        self.assertIsNone(self.preloader.get(state, 81))

    def test_cancelled_results_are_dropped(self) -> None:
        state = QuantumState(3, 1, 0)
        future = self.preloader.preload(state, 60)
        self.preloader.cancel_preloads()
        future.result(timeout=60)
        self.assertFalse(self.preloader.has(state, 60))

    def test_failed_preload_is_logged(self) -> None:
        state = QuantumState(1, 0, 0)
        self.worker.terminate()
        with self.assertLogs("orbcloud.preloader", level="WARNING"):
            self.preloader.preload(state, 10)
        self.assertFalse(self.preloader.has(state, 10))
        self.assertEqual(self.preloader.stats()["inflight"], 0)


if __name__ == "__main__":
    unittest.main()
