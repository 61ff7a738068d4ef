"""Worker orchestration: runs each request off the caller's thread.

Jobs share one ``ThreadPoolExecutor``. Within a job, aggregation and
simplification run concurrently on a short-lived two-thread executor; they
only read the immutable ``Track`` produced by the parser.
"""

from __future__ import annotations

from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
import logging
import threading
from typing import Dict, Optional
from uuid import uuid4

from ..config import MAX_WORKERS
from ..errors import (
    ProcessingCancelled,
    TrackProcessingError,
    TrackValidationError,
    ValidationErrorKind,
    WorkerInitError,
)
from ..models import EnhancedGeoJSON, SimplificationLevel, Track, TrackStatistics
from ..simplification import simplify_all
from ..track_aggregation import aggregate
from ..validation import validate
from .context import ProcessingContext
from .job import MessageCallback, ProcessingJob
from .messages import ProcessingRequest, ProcessingResult, ProcessingState

VALIDATED_PERCENT = 10
PARSED_PERCENT = 40
PARALLEL_DONE_PERCENT = 90


class TrackProcessor:
    """Accepts ``ProcessingRequest`` objects and runs them on worker threads."""

    def __init__(
        self,
        context: ProcessingContext | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.max_workers = MAX_WORKERS if max_workers is None else max_workers
        if self.max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self.context = context or ProcessingContext()
        self._log = logging.getLogger(self.__class__.__name__)
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="track-worker"
        )
        self._jobs: Dict[str, ProcessingJob] = {}
        self._lock = threading.RLock()
        self._closed = False

    def __enter__(self) -> "TrackProcessor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def submit(
        self,
        request: ProcessingRequest,
        on_message: MessageCallback | None = None,
    ) -> ProcessingJob:
        """Queue ``request`` and return its job handle immediately."""

        job = ProcessingJob(uuid4().hex, request, on_message)
        with self._lock:
            if self._closed:
                job._fail(WorkerInitError("Track processor has been shut down"))
                return job
            try:
                future = self._executor.submit(self._run_job, job)
            except RuntimeError as exc:
                self._log.error("Failed to start worker for job %s: %s", job.job_id, exc)
                job._fail(WorkerInitError(f"Could not start worker: {exc}"))
                return job
            self._jobs[job.job_id] = job
        job._attach(future)
        future.add_done_callback(lambda _f, job_id=job.job_id: self._forget(job_id))
        self._log.debug(
            "Submitted job %s (file=%s, activity=%s)",
            job.job_id,
            request.filename or request.file_type,
            request.activity_id,
        )
        return job

    def process(
        self,
        request: ProcessingRequest,
        on_message: MessageCallback | None = None,
        timeout: float | None = None,
    ) -> ProcessingResult:
        """Submit ``request`` and block until its result is available."""

        return self.submit(request, on_message).result(timeout)

    def cancel_all(self) -> int:
        with self._lock:
            jobs = list(self._jobs.values())
        return sum(1 for job in jobs if job.cancel())

    def shutdown(self, wait: bool = True, cancel_pending: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if cancel_pending:
            cancelled = self.cancel_all()
            if cancelled:
                self._log.info("Cancelled %d in-flight job(s) on shutdown", cancelled)
        self._executor.shutdown(wait=wait)

    def _forget(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _run_job(self, job: ProcessingJob) -> None:
        request = job.request
        try:
            job._transition(ProcessingState.VALIDATING, 0)
            validation = validate(
                request.file_bytes,
                request.declared_extension,
                request.max_size_bytes,
            )
            validation.raise_for_error()
            file_type = validation.file_type
            if file_type is None:
                raise TrackValidationError(
                    ValidationErrorKind.UNSUPPORTED_FORMAT,
                    "Validation did not resolve a file type",
                )

            job._transition(ProcessingState.PARSING, VALIDATED_PERCENT)
            track = self.context.parse(request.file_bytes, file_type, job.stop_event)

            job._transition(ProcessingState.SIMPLIFYING_AGGREGATING, PARSED_PERCENT)
            statistics, geojson = self._simplify_and_aggregate(job, track)

            job._complete(
                ProcessingResult(
                    job_id=job.job_id,
                    file_type=file_type,
                    track=track,
                    statistics=statistics,
                    geojson=geojson,
                    activity_id=request.activity_id,
                    journey_id=request.journey_id,
                )
            )
            self._log.info(
                "Processed job %s: %d points (%d skipped), %.2f km",
                job.job_id,
                len(track),
                track.skipped_points,
                statistics.total_distance_km,
            )
        except ProcessingCancelled:
            self._log.info("Job %s stopped after cancellation", job.job_id)
        except TrackProcessingError as exc:
            self._log.warning(
                "Job %s failed during %s: %s", job.job_id, job.state.value, exc
            )
            job._fail(exc)
        except Exception as exc:
            self._log.exception("Unexpected error in job %s", job.job_id)
            job._fail(exc, kind="internal_error")

    def _simplify_and_aggregate(
        self, job: ProcessingJob, track: Track
    ) -> tuple[TrackStatistics, Dict[SimplificationLevel, EnhancedGeoJSON]]:
        request = job.request
        stop_event = job.stop_event
        total_units = len(request.levels) + 1
        done_units = 0
        units_lock = threading.Lock()

        def unit_done() -> None:
            nonlocal done_units
            with units_lock:
                done_units += 1
                span = PARALLEL_DONE_PERCENT - PARSED_PERCENT
                percent = PARSED_PERCENT + span * done_units // total_units
            job._progress(percent)

        def run_aggregate() -> TrackStatistics:
            stats = aggregate(
                track,
                stopped_threshold_kmh=request.stopped_threshold_kmh,
                require_timestamps=request.require_timestamps,
                cancel_event=stop_event,
            )
            unit_done()
            return stats

        def run_simplify() -> Dict[SimplificationLevel, EnhancedGeoJSON]:
            return simplify_all(
                track,
                request.levels,
                cancel_event=stop_event,
                policies=self.context.policies,
                progress=lambda _level, _done, _total: unit_done(),
            )

        with ThreadPoolExecutor(
            max_workers=2, thread_name_prefix=f"track-{job.job_id[:8]}"
        ) as executor:
            stats_future = executor.submit(run_aggregate)
            geojson_future = executor.submit(run_simplify)
            done, _pending = wait([stats_future, geojson_future], return_when=FIRST_EXCEPTION)
            failure = _first_failure(done)
            if failure is not None:
                # Halt the sibling before the executor joins it.
                stop_event.set()
                raise failure
        return stats_future.result(), geojson_future.result()


def _first_failure(futures: "set[Future]") -> Optional[BaseException]:
    """Prefer a real error over the cancellation it triggered in a sibling."""

    errors = [f.exception() for f in futures if f.exception() is not None]
    for error in errors:
        if not isinstance(error, ProcessingCancelled):
            return error
    return errors[0] if errors else None


__all__ = ["TrackProcessor"]
