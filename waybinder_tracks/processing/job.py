"""Caller-side handle for one in-flight file."""

from __future__ import annotations

from concurrent.futures import Future
import logging
import queue
import threading
from typing import Callable, Iterator, Optional

from ..errors import ProcessingCancelled
from .messages import (
    CompletedMessage,
    ErrorMessage,
    ProcessingRequest,
    ProcessingResult,
    ProcessingState,
    ProgressMessage,
    WorkerMessage,
)

MessageCallback = Callable[[WorkerMessage], None]

_CLOSED = object()


class ProcessingJob:
    """State machine and outbox for a single request.

    The worker reports through ``_deliver``; the caller reads ``messages()`` or
    receives callbacks. Delivery and ``cancel()`` share one lock, so once
    ``cancel()`` returns no further message is delivered.
    """

    def __init__(
        self,
        job_id: str,
        request: ProcessingRequest,
        on_message: MessageCallback | None = None,
    ) -> None:
        self.job_id = job_id
        self.request = request
        self._on_message = on_message
        self._log = logging.getLogger(self.__class__.__name__)
        self._lock = threading.RLock()
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._cancel_event = threading.Event()
        # Set on cancellation or when a sibling computation fails.
        self._stop_event = threading.Event()
        self._done = threading.Event()
        self._state = ProcessingState.IDLE
        self._percent = 0
        self._result: Optional[ProcessingResult] = None
        self._error: Optional[BaseException] = None
        self._future: Optional[Future] = None

    # ------------------------------------------------------------------
    # Caller API
    # ------------------------------------------------------------------
    @property
    def state(self) -> ProcessingState:
        return self._state

    @property
    def percent(self) -> int:
        return self._percent

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def done(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> bool:
        """Abandon the request. Returns False when it already finished."""

        with self._lock:
            if self._state.terminal:
                return False
            self._cancel_event.set()
            self._stop_event.set()
            self._state = ProcessingState.CANCELLED
            self._done.set()
            if self._future is not None:
                self._future.cancel()
            self._queue.put(_CLOSED)
        self._log.info("Cancelled processing job %s", self.job_id)
        return True

    def messages(self, timeout: float | None = None) -> Iterator[WorkerMessage]:
        """Yield messages in send order until the terminal one.

        Stops silently after cancellation. ``timeout`` bounds the wait for
        each message and raises ``TimeoutError`` when exceeded.
        """

        while True:
            if self._done.is_set() and self._queue.empty():
                return
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                raise TimeoutError(
                    f"No message from job {self.job_id} within {timeout}s"
                ) from None
            if item is _CLOSED or self.cancelled:
                return
            yield item  # type: ignore[misc]
            if getattr(item, "terminal", False):
                return

    def result(self, timeout: float | None = None) -> ProcessingResult:
        """Block until the job finishes; raise its error or cancellation."""

        if not self._done.wait(timeout):
            raise TimeoutError(f"Job {self.job_id} did not finish within {timeout}s")
        if self._error is not None:
            raise self._error
        if self._state is not ProcessingState.COMPLETE or self._result is None:
            raise ProcessingCancelled(f"Job {self.job_id} was cancelled")
        return self._result

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------
    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    def _attach(self, future: Future) -> None:
        with self._lock:
            self._future = future

    def _transition(self, state: ProcessingState, percent: int) -> None:
        with self._lock:
            if self._state.terminal:
                raise ProcessingCancelled(f"Job {self.job_id} was cancelled")
            self._state = state
            self._progress_locked(percent)

    def _progress(self, percent: int) -> None:
        with self._lock:
            if not self._state.terminal:
                self._progress_locked(percent)

    def _progress_locked(self, percent: int) -> None:
        # Progress never regresses, even when concurrent phases report.
        self._percent = max(self._percent, min(100, int(percent)))
        self._deliver(ProgressMessage(self.job_id, self._state, self._percent))

    def _complete(self, result: ProcessingResult) -> None:
        with self._lock:
            if self._state.terminal:
                return
            self._percent = 100
            self._deliver(ProgressMessage(self.job_id, self._state, 100))
            self._state = ProcessingState.COMPLETE
            self._result = result
            self._deliver(CompletedMessage(self.job_id, result))
            self._done.set()

    def _fail(self, error: BaseException, kind: str | None = None) -> None:
        with self._lock:
            if self._state.terminal:
                return
            phase = self._state
            self._state = ProcessingState.ERRORED
            self._error = error
            self._stop_event.set()
            resolved_kind = kind or getattr(error, "kind", None) or "internal_error"
            self._deliver(
                ErrorMessage(
                    job_id=self.job_id,
                    phase=phase,
                    kind=resolved_kind,
                    message=str(error) or error.__class__.__name__,
                    error=error,
                )
            )
            self._done.set()

    def _deliver(self, message: WorkerMessage) -> None:
        if self._cancel_event.is_set():
            return
        self._queue.put(message)
        if self._on_message is None:
            return
        try:
            self._on_message(message)
        except Exception:
            self._log.debug(
                "Message callback failed for job %s", self.job_id, exc_info=True
            )


__all__ = ["ProcessingJob", "MessageCallback"]
