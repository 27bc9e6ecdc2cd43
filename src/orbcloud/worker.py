from __future__ import annotations

import itertools
import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Union

from orbcloud.engine import SamplingEngine
from orbcloud.physics.density_field import DensityFieldGrid
from orbcloud.physics.nodal import NodalSurfaceData
from orbcloud.physics.sampling import OrbitalSamplingResult
from orbcloud.quantum import QuantumState, state_from_mapping

logger = logging.getLogger(__name__)

TERMINATED_MESSAGE = "Orbital sampling worker terminated"


class WorkerRequestError(RuntimeError):
    pass


class WorkerTerminatedError(RuntimeError):
    def __init__(self, message: str = TERMINATED_MESSAGE) -> None:
        super().__init__(message)


@dataclass(frozen=True)
class SampleRequest:
    atomic_number: int
    state: QuantumState
    count: int
    is_dark: bool = True
    kind: str = field(default="sample", init=False)


@dataclass(frozen=True)
class OutlineFieldRequest:
    atomic_number: int
    state: QuantumState
    extent: float
    max_probability: float
    resolution: int | None = None
    kind: str = field(default="outline-field", init=False)


@dataclass(frozen=True)
class NodalDataRequest:
    atomic_number: int
    state: QuantumState
    extent: float
    kind: str = field(default="nodal-data", init=False)


@dataclass(frozen=True)
class ClearCachesRequest:
    kind: str = field(default="clear-caches", init=False)


WorkerRequest = Union[SampleRequest, OutlineFieldRequest, NodalDataRequest, ClearCachesRequest]


@dataclass(frozen=True)
class SampleResponse:
    id: int
    result: OrbitalSamplingResult


@dataclass(frozen=True)
class OutlineFieldResponse:
    id: int
    grid: DensityFieldGrid


@dataclass(frozen=True)
class NodalDataResponse:
    id: int
    data: NodalSurfaceData


@dataclass(frozen=True)
class ClearCachesResponse:
    id: int


@dataclass(frozen=True)
class ErrorResponse:
    id: int
    kind: str
    message: str


WorkerResponse = Union[SampleResponse, OutlineFieldResponse, NodalDataResponse, ClearCachesResponse, ErrorResponse]


def request_from_message(message: dict) -> WorkerRequest:
    """Parse a plain ``{"type": ..., ...}`` payload into a typed request."""
    kind = message.get("type")
    if kind == "clear-caches":
        return ClearCachesRequest()
    if kind not in ("sample", "outline-field", "nodal-data"):
        raise WorkerRequestError(f"Unknown request type: {kind!r}")
    try:
        z = int(message.get("Z", message.get("atomic_number", 1)))
        state = state_from_mapping(message["state"], atomic_number=z)
        if kind == "sample":
            return SampleRequest(z, state, int(message["count"]), bool(message.get("is_dark", True)))
        if kind == "outline-field":
            resolution = message.get("resolution")
            return OutlineFieldRequest(
                z,
                state,
                float(message["extent"]),
                float(message["max_probability"]),
                int(resolution) if resolution is not None else None,
            )
        return NodalDataRequest(z, state, float(message["extent"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise WorkerRequestError(f"Malformed {kind} request: {exc}") from exc


def handle_request(engine: SamplingEngine, request_id: int, request: WorkerRequest) -> WorkerResponse:
    if isinstance(request, ClearCachesRequest):
        engine.clear_caches()
        return ClearCachesResponse(request_id)
    state = request.state.with_atomic_number(request.atomic_number)
    if isinstance(request, SampleRequest):
        return SampleResponse(request_id, engine.sample(state, request.count, request.is_dark))
    if isinstance(request, OutlineFieldRequest):
        grid = engine.outline_field(state, request.extent, request.max_probability, request.resolution)
        return OutlineFieldResponse(request_id, grid)
    if isinstance(request, NodalDataRequest):
        return NodalDataResponse(request_id, engine.nodal_data(state, request.extent))
    raise WorkerRequestError(f"Unsupported request: {request!r}")


class OrbitalWorker:
    """Background thread that serves requests one at a time against a private engine."""

    def __init__(self, engine_factory: Callable[[], SamplingEngine] = SamplingEngine, name: str = "orbital-worker") -> None:
        self._engine_factory = engine_factory
        self._queue: queue.Queue = queue.Queue()
        self._pending: dict[int, Future] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._terminated = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started and not self._terminated.is_set() and self._thread.is_alive()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def start(self) -> OrbitalWorker:
        if not self._started:
            self._started = True
            self._thread.start()
            logger.info("Started %s", self._thread.name)
        return self

    def submit(self, request: WorkerRequest) -> Future:
        future: Future = Future()
        with self._lock:
            if self._terminated.is_set():
                future.set_exception(WorkerTerminatedError())
                return future
            request_id = next(self._ids)
            self._pending[request_id] = future
        self._queue.put((request_id, request))
        return future

    def terminate(self) -> None:
        with self._lock:
            if self._terminated.is_set():
                return
            self._terminated.set()
            pending = list(self._pending.values())
            self._pending.clear()
        self._queue.put(None)
        for future in pending:
            if not future.done():
                future.set_exception(WorkerTerminatedError())
        logger.info("Terminated %s with %d pending request(s)", self._thread.name, len(pending))

    def join(self, timeout: float | None = None) -> None:
        if self._started:
            self._thread.join(timeout)

    def _run(self) -> None:
        engine = self._engine_factory()
        while True:
            item = self._queue.get()
            if item is None or self._terminated.is_set():
                break
            request_id, request = item
            try:
                response = handle_request(engine, request_id, request)
            except Exception as exc:
                logger.debug("Request %d failed", request_id, exc_info=True)
                response = ErrorResponse(request_id, getattr(request, "kind", "unknown"), str(exc) or type(exc).__name__)
            self._complete(request_id, response)

    def _complete(self, request_id: int, response: WorkerResponse) -> None:
        with self._lock:
            future = self._pending.pop(request_id, None)
        if future is None or future.done():
            return
        if isinstance(response, ErrorResponse):
            future.set_exception(WorkerRequestError(response.message))
        else:
            future.set_result(response)

    def __enter__(self) -> OrbitalWorker:
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.terminate()
        self.join()


class OrbitalWorkerClient:
    """Blocking convenience layer: failed requests are logged and come back as ``None``."""

    def __init__(self, worker: OrbitalWorker | None = None) -> None:
        self.worker = worker or OrbitalWorker()
        self.worker.start()

    def _wait(self, future: Future, what: str):
        try:
            return future.result()
        except (WorkerRequestError, WorkerTerminatedError) as exc:
            logger.warning("%s request failed: %s", what, exc)
            return None

    def sample(self, state: QuantumState, count: int, is_dark: bool = True) -> OrbitalSamplingResult | None:
        response = self._wait(self.worker.submit(SampleRequest(state.atomic_number, state, count, is_dark)), "sample")
        return response.result if response is not None else None

    def outline_field(
        self,
        state: QuantumState,
        extent: float,
        max_probability: float,
        resolution: int | None = None,
    ) -> DensityFieldGrid | None:
        request = OutlineFieldRequest(state.atomic_number, state, extent, max_probability, resolution)
        response = self._wait(self.worker.submit(request), "outline-field")
        return response.grid if response is not None else None

    def nodal_data(self, state: QuantumState, extent: float) -> NodalSurfaceData | None:
        response = self._wait(self.worker.submit(NodalDataRequest(state.atomic_number, state, extent)), "nodal-data")
        return response.data if response is not None else None

    def clear_caches(self) -> bool:
        return self._wait(self.worker.submit(ClearCachesRequest()), "clear-caches") is not None

    def close(self) -> None:
        self.worker.terminate()
        self.worker.join()
