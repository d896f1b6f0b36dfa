"""The scan loop: tracking frames in, spatial frames and classifications out.

One asyncio task drives the loop at a fixed period (~10 Hz).  Every tick:

1. Pull the current frame from the tracking source; skip the tick when
   tracking is lost.
2. Feed raw points into the :class:`PointBuffer` and planes into the
   :class:`PlaneTracker`.
3. Filter outliers and downsample the buffered points in a worker thread.
4. Publish the resulting :class:`SpatialFrame` and a status line.
5. About once per second, capture an image and run both inference
   gateways (again in a worker thread), then publish their results.
   Without an image capture the loop only publishes geometry.

The offloaded work of a tick is awaited before the next tick is
scheduled, so at most one batch is in flight and results are published
in tick order.  An exception anywhere in a tick abandons that tick only;
the loop keeps running until :meth:`ScanLoopOrchestrator.stop` is called.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

import numpy as np

from packages.core.config import ScanConfig
from packages.core.errors import FrameProcessingError
from packages.core.types import (
    DamageResult,
    MaterialResult,
    ModelState,
    PlaneObservation,
    SpatialFrame,
    TickOutcome,
    TickStatus,
)
from packages.inference.gateway import InferenceGateway
from packages.pipeline.buffer import PlaneTracker, PointBuffer
from packages.pipeline.preprocess import Downsampler, OutlierFilter
from packages.scan.capture import ImageCapture
from packages.scan.observer import ScanObserver, frame_status
from packages.scan.tracking import TrackingSource

logger = logging.getLogger(__name__)


def is_inference_tick(now: float, period: float, interval: float = 1.0) -> bool:
    """Best-effort "about once per *interval*" test on the wall clock.

    True when *now* falls within the first *period* seconds of an
    *interval*-long window.  Ticks drift against the wall clock, so the
    actual cadence is only approximately one per interval.
    """
    return (now % interval) < period


class ScanLoopOrchestrator:
    """Own the buffers and gateways of one scanning session and drive the tick loop."""

    def __init__(
        self,
        tracking: TrackingSource,
        capture: Optional[ImageCapture],
        observer: ScanObserver,
        material: InferenceGateway[MaterialResult],
        damage: InferenceGateway[DamageResult],
        config: ScanConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or ScanConfig()
        self.tracking = tracking
        self.capture = capture
        self.observer = observer
        self.material = material
        self.damage = damage
        self._clock = clock

        self.buffer = PointBuffer(self.config.buffer_capacity, self.config.min_confidence)
        self.planes = PlaneTracker()
        self._outlier_filter = OutlierFilter(self.config.outlier_sigma)
        self._downsampler = Downsampler(self.config.downsample_target)

        self._task: Optional[asyncio.Task] = None
        self._stop_requested: Optional[asyncio.Event] = None
        self._tick_lock = asyncio.Lock()
        self._lifecycle = asyncio.Lock()
        self._disposed = False

        self.ticks_run = 0
        self.ticks_failed = 0
        self.last_outcome: Optional[TickOutcome] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── lifecycle ───────────────────────────────────────────────────
    async def start(self) -> None:
        """Load models, resume tracking and begin scheduling ticks.  Idempotent.

        If start-up fails part way, tracking is paused and both gateways
        are closed again before the error propagates.
        """
        async with self._lifecycle:
            if self.running:
                return
            if self._disposed:
                raise RuntimeError("orchestrator has been disposed")

            try:
                await asyncio.to_thread(self._load_models)
                self._report_model_states()
                self.tracking.resume()
                self._stop_requested = asyncio.Event()
                self._task = asyncio.create_task(self._run(), name="scan-loop")
            except BaseException:
                logger.error("Scan start-up failed; releasing models")
                try:
                    self.tracking.pause()
                finally:
                    self._close_gateways()
                raise
            logger.info("🚀 Scanning started (period=%.3fs)", self.config.tick_period)
            self._notify(self.observer.publish_status, "Processing spatial data…")

    async def stop(self) -> None:
        """Stop scheduling ticks and pause tracking.  Idempotent.

        A ``start`` still in progress completes first.  A tick that is
        already running is allowed to finish; no tick starts after this
        returns.  The buffers are cleared.
        """
        async with self._lifecycle:
            if self._task is None:
                return
            self._stop_requested.set()
            try:
                await self._task
            finally:
                self._task = None
                self.tracking.pause()
                self.buffer.clear()
                self.planes.clear()
                logger.info("⏹️  Scanning stopped after %d tick(s)", self.ticks_run)

    async def dispose(self) -> None:
        """Stop, release the tracking source and close both gateways."""
        try:
            await self.stop()
        finally:
            self._disposed = True
            try:
                self.tracking.release()
            finally:
                self._close_gateways()
                logger.info("🧹 Scan session disposed")

    async def __aenter__(self) -> "ScanLoopOrchestrator":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.dispose()

    def _load_models(self) -> None:
        states = [gateway.load() for gateway in (self.material, self.damage)]
        logger.info("Model states: material=%s damage=%s", states[0].value, states[1].value)

    def _report_model_states(self) -> None:
        gateways = (self.material, self.damage)
        if any(gateway.state is ModelState.FAILED for gateway in gateways):
            self._notify(
                self.observer.publish_status,
                "Warning: Some AI models failed to load. Results will be reported as unknown.",
            )
        if any(gateway.is_using_fallback for gateway in gateways):
            self._notify(self.observer.publish_status, "Using fallback AI models")

    def _close_gateways(self) -> None:
        try:
            self.material.close()
        finally:
            self.damage.close()

    async def _run(self) -> None:
        while not self._stop_requested.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(
                    self._stop_requested.wait(), timeout=self.config.tick_period
                )
            except asyncio.TimeoutError:
                pass

    # ── one tick ────────────────────────────────────────────────────
    async def tick(self) -> TickOutcome:
        """Run a single tick and record its outcome.  Never raises ``Exception``."""
        async with self._tick_lock:
            index = self.ticks_run
            self.ticks_run += 1
            started = time.perf_counter()
            try:
                outcome = await self._process_tick(index)
            except Exception as exc:
                self.ticks_failed += 1
                logger.warning("Tick %d abandoned: %s", index, exc)
                logger.debug("Tick %d failure", index, exc_info=True)
                outcome = TickOutcome(
                    index=index,
                    status=TickStatus.FAILED,
                    error=f"{type(exc).__name__}: {exc}",
                )
            outcome.duration = time.perf_counter() - started
            self.last_outcome = outcome
            return outcome

    async def _process_tick(self, index: int) -> TickOutcome:
        try:
            tracking_frame = self.tracking.current_frame()
            if not tracking_frame.tracking:
                return TickOutcome(index=index, status=TickStatus.SKIPPED)
            self.buffer.ingest(tracking_frame.points)
            self.planes.update(tracking_frame.planes)
            frame = await asyncio.to_thread(
                self._build_frame, self.buffer.snapshot(), self.planes.snapshot()
            )
        except Exception as exc:
            raise FrameProcessingError(str(exc)) from exc

        self._notify(self.observer.publish_frame, frame)
        self._notify(self.observer.publish_status, frame_status(frame))
        logger.debug("Tick %d: %s", index, frame_status(frame))

        material = damage = None
        if self.capture is not None and is_inference_tick(
            self._clock(), self.config.tick_period, self.config.inference_interval
        ):
            self._notify(self.observer.publish_status, "Detecting materials…")
            material, damage = await asyncio.to_thread(self._classify)
            self._notify(self.observer.publish_material, material)
            self._notify(self.observer.publish_damage, damage)

        return TickOutcome(
            index=index,
            status=TickStatus.PUBLISHED,
            frame=frame,
            material=material,
            damage=damage,
        )

    def _build_frame(
        self,
        points: np.ndarray,
        planes: tuple[PlaneObservation, ...],
    ) -> SpatialFrame:
        retained = self._downsampler(self._outlier_filter(points))
        return SpatialFrame(points=retained, planes=list(planes))

    def _classify(self) -> tuple[MaterialResult, DamageResult]:
        image = self.capture.capture()
        return self.material.infer(image), self.damage.infer(image)

    def _notify(self, publish: Callable, *args) -> None:
        try:
            publish(*args)
        except Exception:
            logger.exception("Observer %s failed", getattr(publish, "__name__", publish))
