from __future__ import annotations

import logging
import threading
from concurrent.futures import Future

from orbcloud.cache import LRUStore
from orbcloud.config import CacheSettings
from orbcloud.physics.sampling import OrbitalSamplingResult
from orbcloud.quantum import QuantumState, neighbouring_states
from orbcloud.theming.palette import theme_mode
from orbcloud.worker import OrbitalWorker, SampleRequest, WorkerRequestError, WorkerTerminatedError

logger = logging.getLogger(__name__)

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


class OrbitalPreloader:
    """Warms sampling results for states the user is likely to pick next.

    Results land in a bounded LRU from the worker thread; reads hand back copies.
    """

    def __init__(self, worker: OrbitalWorker, capacity: int = CacheSettings.preload_capacity, max_n: int = 5) -> None:
        self.worker = worker
        self.max_n = max_n
        self._results: LRUStore[tuple, OrbitalSamplingResult] = LRUStore(capacity)
        self._inflight: dict[tuple, Future] = {}
        self._generation = 0
        self._lock = threading.Lock()

    @staticmethod
    def key(state: QuantumState, count: int, is_dark: bool) -> tuple:
        return (*state.orbital_key, int(count), theme_mode(is_dark))

    def get(self, state: QuantumState, count: int, is_dark: bool = True) -> OrbitalSamplingResult | None:
        with self._lock:
            cached = self._results.get(self.key(state, count, is_dark))
        return cached.copy() if cached is not None else None

    def has(self, state: QuantumState, count: int, is_dark: bool = True) -> bool:
        with self._lock:
            return self.key(state, count, is_dark) in self._results

    def put(self, state: QuantumState, count: int, is_dark: bool, result: OrbitalSamplingResult) -> None:
        with self._lock:
            self._results.put(self.key(state, count, is_dark), result.copy())

    def preload(self, state: QuantumState, count: int, is_dark: bool = True) -> Future | None:
        """Queue a background sample; the returned future resolves once the result is stored."""
        key = self.key(state, count, is_dark)
        with self._lock:
            if key in self._results or key in self._inflight:
                return None
            generation = self._generation
            future = self.worker.submit(SampleRequest(state.atomic_number, state, count, is_dark))
            self._inflight[key] = future
        stored: Future = Future()
        future.add_done_callback(lambda done: stored.set_result(self._store(key, generation, done)))
        return stored

    def preload_neighbourhood(self, state: QuantumState, count: int, is_dark: bool = True) -> list[Future]:
        candidates = sorted(neighbouring_states(state, self.max_n), key=lambda item: _PRIORITY_ORDER[item[0]])
        futures = []
        for priority, candidate in candidates:
            future = self.preload(candidate, count, is_dark)
            if future is not None:
                logger.debug("Queued %s preload of %s", priority, candidate.label())
                futures.append(future)
        return futures

    def _store(self, key: tuple, generation: int, future: Future) -> OrbitalSamplingResult | None:
        with self._lock:
            if self._inflight.get(key) is future:
                del self._inflight[key]
            if generation != self._generation:
                return None
        try:
            response = future.result()
        except (WorkerRequestError, WorkerTerminatedError) as exc:
            logger.warning("Preload failed for %s: %s", key, exc)
            return None
        with self._lock:
            if generation != self._generation:
                return None
            self._results.put(key, response.result)
        return response.result

    def cancel_preloads(self) -> None:
        """Drop every outstanding preload; late results are discarded."""
        with self._lock:
            self._generation += 1
            self._inflight.clear()

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._inflight.clear()
            self._results.clear()

    def stats(self) -> dict:
        with self._lock:
            return {**self._results.stats(), "inflight": len(self._inflight)}
