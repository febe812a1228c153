"""
Frame scheduler: the one-frame-in-flight loop between a video source and the
inference worker.

States:
    IDLE             loaded (or waiting for the source), nothing in flight
    FRAME_IN_FLIGHT  exactly one frame handed to the inference worker
    STOPPED          stop() was called, or the model failed to load

A dedicated scheduling thread owns every state transition and drains an
inbox of messages (tick, completion, start, stop). Inference runs on a
single-worker executor; its completion posts a message back to the inbox,
and only then is the next frame captured. Frames that arrive while a frame
is in flight are never queued: the source is simply not read, so a slow
model skips frames instead of building a backlog.

Frame ownership: the captured FrameData is handed to the worker, which
releases it on every exit path. The scheduling thread does not touch it
after submission.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from detection.base import Detector
from models.config import SchedulerConfig
from models.detection import Detection
from models.errors import FatalLoadError, FrameError, InferenceError
from models.frame import FrameData
from observation.base import ObservationSource
from .events import (
    BackendReady,
    DetectionsReady,
    FrameFailed,
    SchedulerEvent,
    SessionFailed,
    SourceEnded,
)

Listener = Callable[[SchedulerEvent], None]
FrameTap = Callable[[FrameData], None]


class SchedulerState(str, Enum):
    IDLE = "idle"
    FRAME_IN_FLIGHT = "frame_in_flight"
    STOPPED = "stopped"


class _Message(Enum):
    START = "start"
    TICK = "tick"
    COMPLETED = "completed"
    STOP = "stop"
    SHUTDOWN = "shutdown"


@dataclass
class SchedulerStats:
    """Runtime statistics for the scheduler."""
    submitted: int = 0
    completed: int = 0
    failed: int = 0
    discarded: int = 0
    empty_ticks: int = 0
    consecutive_failures: int = 0
    last_latency_ms: Optional[float] = None
    last_result_ts: Optional[float] = None
    start_time: float = field(default_factory=time.time)
    last_stats_log_time: float = field(default_factory=time.time)

    @property
    def inference_fps(self) -> float:
        elapsed = time.time() - self.start_time
        if elapsed <= 0:
            return 0.0
        return self.completed / elapsed

    def to_dict(self) -> dict:
        return {
            "submitted": self.submitted,
            "completed": self.completed,
            "failed": self.failed,
            "discarded": self.discarded,
            "empty_ticks": self.empty_ticks,
            "consecutive_failures": self.consecutive_failures,
            "last_latency_ms": self.last_latency_ms,
            "last_result_ts": self.last_result_ts,
            "inference_fps": self.inference_fps,
        }


class FrameScheduler:
    """
    Drives capture -> inference -> result with at most one frame in flight.

    Example:
        scheduler = FrameScheduler(source, detector, SchedulerConfig())
        scheduler.add_listener(on_event)
        scheduler.start()        # loads the model on first start
        ...
        scheduler.shutdown()
    """

    def __init__(
        self,
        source: ObservationSource,
        detector: Detector,
        config: Optional[SchedulerConfig] = None,
        frame_tap: Optional[FrameTap] = None,
    ):
        self.source = source
        self.detector = detector
        self.config = config or SchedulerConfig()
        self.stats = SchedulerStats()
        self._frame_tap = frame_tap
        self._listeners: List[Listener] = []

        self._state = SchedulerState.IDLE
        self._state_cond = threading.Condition()
        self._enabled = threading.Event()
        self._waiting_for_frame = False
        self._fatal_error: Optional[FatalLoadError] = None
        self._backend_reported = False

        self._inbox: "queue.Queue[Tuple[_Message, Any]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._opened_source = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        with self._state_cond:
            return self._state

    @property
    def enabled(self) -> bool:
        return self._enabled.is_set()

    @property
    def fatal_error(self) -> Optional[FatalLoadError]:
        return self._fatal_error

    def add_listener(self, listener: Listener) -> None:
        """
        Register an event observer.

        Listeners run on the scheduling thread (or the caller's thread for
        load events) and must return quickly.
        """
        self._listeners.append(listener)

    def load(self) -> str:
        """
        Load the detector's model once.

        Raises:
            FatalLoadError: No backend could run the model. The scheduler
                stays STOPPED for the rest of its life.
        """
        if self._fatal_error is not None:
            raise self._fatal_error

        try:
            backend = self.detector.load()
        except FatalLoadError as e:
            self._fatal_error = e
            self._enabled.clear()
            self._set_state(SchedulerState.STOPPED)
            logging.error(f"Detection disabled, model failed to load: {e}")
            self._emit(SessionFailed(error=e))
            raise

        if not self._backend_reported:
            self._backend_reported = True
            logging.info(f"Inference backend active: {backend}")
            self._emit(BackendReady(backend=backend))
        return backend

    def start(self) -> bool:
        """
        Begin capturing and submitting frames.

        Returns False (and does nothing) if a fatal load error occurred
        earlier. Loads the model on first call; a load failure raises.
        """
        if self._fatal_error is not None:
            logging.warning("start() ignored: model failed to load earlier")
            return False

        if not self.detector.loaded:
            self.load()

        if not self.source.is_open:
            self.source.open()
            self._opened_source = True

        self._ensure_thread()
        self.stats.start_time = time.time()
        self._enabled.set()
        self._inbox.put((_Message.START, None))
        logging.info(f"Scheduler started: source={self.source.source_id}")
        return True

    def stop(self) -> None:
        """
        Stop submitting frames.

        Cooperative: an inference already running finishes in the worker and
        its result is discarded.
        """
        self._enabled.clear()
        if self._thread is None:
            self._set_state(SchedulerState.STOPPED)
            return
        self._inbox.put((_Message.STOP, None))

    def wait_for_state(self, state: SchedulerState, timeout: Optional[float] = None) -> bool:
        """Block until the scheduler reaches `state`; False on timeout."""
        with self._state_cond:
            return self._state_cond.wait_for(lambda: self._state is state, timeout=timeout)

    def shutdown(self) -> None:
        """Stop, wait for the in-flight frame, and release every resource."""
        self.stop()
        if self._thread is not None:
            if not self.wait_for_state(SchedulerState.STOPPED, timeout=self.config.stop_timeout):
                logging.warning(
                    f"In-flight inference did not finish within {self.config.stop_timeout}s"
                )
            self._inbox.put((_Message.SHUTDOWN, None))
            self._thread.join(timeout=self.config.stop_timeout)
            self._thread = None

        in_flight = self.state is SchedulerState.FRAME_IN_FLIGHT
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

        if in_flight:
            logging.warning("Leaving inference session open: a frame is still in flight")
        else:
            self.detector.close()

        if self._opened_source:
            try:
                self.source.close()
            except Exception as e:
                logging.warning(f"Error closing source: {e}")
            self._opened_source = False

        logging.info(
            f"Scheduler shut down: submitted={self.stats.submitted}, "
            f"completed={self.stats.completed}, failed={self.stats.failed}, "
            f"discarded={self.stats.discarded}"
        )

    # ------------------------------------------------------------------
    # Scheduling thread
    # ------------------------------------------------------------------

    def _ensure_thread(self) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run, name="frame-scheduler", daemon=True)
            self._thread.start()

    def _run(self) -> None:
        while True:
            timeout = self.config.poll_interval if self._waiting_for_frame else None
            try:
                message, payload = self._inbox.get(timeout=timeout)
            except queue.Empty:
                message, payload = _Message.TICK, None

            if message is _Message.SHUTDOWN:
                break

            try:
                self._handle(message, payload)
            except Exception as e:
                # Keep the loop alive; a dead scheduling thread would deadlock the pipeline
                logging.error(f"Scheduler error handling {message.value}: {e}")
                import traceback
                traceback.print_exc()
                if self.state is not SchedulerState.FRAME_IN_FLIGHT:
                    self._set_state(SchedulerState.IDLE)
                    self._waiting_for_frame = self._enabled.is_set()

    def _handle(self, message: _Message, payload: Any) -> None:
        if message is _Message.START:
            if self.state is not SchedulerState.FRAME_IN_FLIGHT:
                self._set_state(SchedulerState.IDLE)
                self._tick()
        elif message is _Message.TICK:
            if self._enabled.is_set() and self.state is SchedulerState.IDLE:
                self._tick()
        elif message is _Message.COMPLETED:
            self._on_completed(*payload)
        elif message is _Message.STOP:
            self._waiting_for_frame = False
            if self.state is not SchedulerState.FRAME_IN_FLIGHT and not self._enabled.is_set():
                self._set_state(SchedulerState.STOPPED)

    def _tick(self) -> None:
        """Capture one frame and submit it, or schedule another poll."""
        frame_data = self._capture()
        if frame_data is None:
            if self.source.ended:
                self._waiting_for_frame = False
                logging.info(f"Source ended: {self.source.source_id}")
                self._emit(SourceEnded(source_id=self.source.source_id))
                return
            self._waiting_for_frame = True
            self.stats.empty_ticks += 1
            return

        self._waiting_for_frame = False
        self._submit(frame_data)

    def _capture(self) -> Optional[FrameData]:
        try:
            frame_data = self.source.read()
        except Exception as e:
            logging.warning(f"Source read failed: {e}")
            return None
        if frame_data is None:
            return None

        if self._frame_tap is not None:
            try:
                self._frame_tap(frame_data)
            except Exception as e:
                logging.warning(f"Frame tap error: {e}")
        return frame_data

    def _submit(self, frame_data: FrameData) -> None:
        frame_index = frame_data.frame_index
        frame_size = frame_data.size
        submitted_at = time.perf_counter()

        self._set_state(SchedulerState.FRAME_IN_FLIGHT)
        try:
            future = self._executor.submit(self._infer, frame_data)
        except RuntimeError as e:
            frame_data.release()
            self._set_state(SchedulerState.IDLE)
            logging.error(f"Could not submit frame {frame_index}: {e}")
            return
        self.stats.submitted += 1

        # The worker owns frame_data from here on
        del frame_data
        future.add_done_callback(
            lambda f: self._inbox.put(
                (_Message.COMPLETED, (f, frame_index, frame_size, submitted_at))
            )
        )

    def _infer(self, frame_data: FrameData) -> List[Detection]:
        """Runs on the inference worker."""
        try:
            return self.detector.detect(frame_data.frame)
        finally:
            frame_data.release()

    def _on_completed(
        self,
        future: Future,
        frame_index: int,
        frame_size: Tuple[int, int],
        submitted_at: float,
    ) -> None:
        latency_ms = (time.perf_counter() - submitted_at) * 1000
        self._set_state(SchedulerState.IDLE)

        detections: List[Detection] = []
        error: Optional[FrameError] = None
        try:
            detections = future.result()
        except FrameError as e:
            error = e
        except Exception as e:
            error = InferenceError(f"{type(e).__name__}: {e}")
            error.__cause__ = e

        if not self._enabled.is_set():
            self.stats.discarded += 1
            logging.debug(f"Discarding result for frame {frame_index}: scheduler stopped")
            self._set_state(SchedulerState.STOPPED)
            return

        if error is not None:
            self._record_failure(frame_index, error)
            self._emit(FrameFailed(frame_index=frame_index, error=error))
        else:
            self.stats.completed += 1
            self.stats.consecutive_failures = 0
            self.stats.last_latency_ms = latency_ms
            self.stats.last_result_ts = time.time()
            self._emit(
                DetectionsReady(
                    frame_index=frame_index,
                    frame_size=frame_size,
                    detections=tuple(detections),
                    latency_ms=latency_ms,
                )
            )

        self._maybe_log_stats()

        if self._enabled.is_set() and self.state is SchedulerState.IDLE:
            self._tick()

    def _record_failure(self, frame_index: int, error: FrameError) -> None:
        self.stats.failed += 1
        self.stats.consecutive_failures += 1
        n = self.stats.consecutive_failures
        every = max(1, self.config.error_log_every)
        if n == 1 or n % every == 0:
            logging.warning(
                f"Frame {frame_index} failed ({type(error).__name__}, "
                f"{n} consecutive): {error}"
            )

    def _maybe_log_stats(self) -> None:
        now = time.time()
        if now - self.stats.last_stats_log_time < self.config.stats_log_interval:
            return
        self.stats.last_stats_log_time = now
        latency = self.stats.last_latency_ms
        logging.info(
            f"Scheduler stats: completed={self.stats.completed}, failed={self.stats.failed}, "
            f"fps={self.stats.inference_fps:.1f}, "
            f"latency={'n/a' if latency is None else f'{latency:.1f}ms'}"
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_state(self, state: SchedulerState) -> None:
        with self._state_cond:
            if self._state is state:
                return
            # STOPPED after a fatal load is permanent
            if self._fatal_error is not None and self._state is SchedulerState.STOPPED:
                return
            logging.debug(f"Scheduler state: {self._state.value} -> {state.value}")
            self._state = state
            self._state_cond.notify_all()

    def _emit(self, event: SchedulerEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logging.warning(f"Listener error on {event.kind.value}: {e}")
