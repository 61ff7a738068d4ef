"""Worker pipeline: state progression, errors, cancellation and shutdown."""

import threading

import pytest

from waybinder_tracks.errors import (
    MissingTimestampsError,
    ParseError,
    ProcessingCancelled,
    TrackValidationError,
    WorkerInitError,
)
from waybinder_tracks.models import SimplificationLevel, ValidationResult
from waybinder_tracks.parsers.gpx import GpxParser
from waybinder_tracks.processing import (
    CompletedMessage,
    ErrorMessage,
    ProcessingContext,
    ProcessingRequest,
    ProcessingState,
    ProgressMessage,
    TrackProcessor,
)

from conftest import gpx_bytes, straight_points


class BlockingGpxParser:
    """Signals when parsing starts and waits for the test to release it."""

    file_type = "gpx"

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def parse(self, file_bytes, cancel_event=None):
        self.entered.set()
        self.release.wait(5)
        # Deliberately ignores cancel_event to prove delivery stays closed.
        return GpxParser().parse(file_bytes)


class ExplodingParser:
    file_type = "gpx"

    def parse(self, file_bytes, cancel_event=None):
        raise RuntimeError("boom")


@pytest.fixture
def processor():
    proc = TrackProcessor(max_workers=2)
    yield proc
    proc.shutdown()


def _request(payload, **kwargs):
    return ProcessingRequest(file_bytes=payload, filename="ride.gpx", **kwargs)


def test_successful_run_reports_monotonic_progress(processor, five_point_gpx):
    received = []
    result = processor.process(_request(five_point_gpx, activity_id="a1"), on_message=received.append, timeout=10)

    assert isinstance(received[-1], CompletedMessage)
    assert received[-1].result is result
    progress = [m for m in received if isinstance(m, ProgressMessage)]
    assert progress[0].state is ProcessingState.VALIDATING and progress[0].percent == 0
    percents = [m.percent for m in progress]
    assert percents == sorted(percents)
    assert percents[-1] == 100
    assert 10 in percents and 40 in percents
    states = [m.state for m in progress]
    assert states.index(ProcessingState.PARSING) < states.index(ProcessingState.SIMPLIFYING_AGGREGATING)
    assert sum(1 for m in received if getattr(m, "terminal", False)) == 1

    assert result.activity_id == "a1"
    assert result.file_type == "gpx"
    assert result.statistics.total_distance_km == pytest.approx(0.4)
    assert set(result.geojson) == set(SimplificationLevel)
    assert result.statistics.point_count == len(result.track)


def test_messages_iterator_ends_with_completion(processor, five_point_gpx):
    job = processor.submit(_request(five_point_gpx))
    messages = list(job.messages(timeout=10))
    assert isinstance(messages[-1], CompletedMessage)
    assert all(m.job_id == job.job_id for m in messages)
    assert job.state is ProcessingState.COMPLETE
    assert job.percent == 100
    assert not job.cancel()


def test_requested_levels_only(processor, five_point_gpx):
    result = processor.process(_request(five_point_gpx, levels=("low",)), timeout=10)
    assert set(result.geojson) == {SimplificationLevel.LOW}
    payload = result.to_dict()
    assert payload["geoJson"] is result.geojson[SimplificationLevel.LOW]
    assert payload["stats"]["pointCount"] == 5
    with pytest.raises(KeyError):
        result.geojson_for("high")


def test_validation_failure_reports_phase(processor):
    job = processor.submit(_request(b"plain text, no markup"))
    messages = list(job.messages(timeout=10))
    error = messages[-1]
    assert isinstance(error, ErrorMessage)
    assert error.phase is ProcessingState.VALIDATING
    assert error.kind == "malformed_content"
    assert error.to_dict()["phase"] == "validating"
    assert job.state is ProcessingState.ERRORED
    with pytest.raises(TrackValidationError):
        job.result(1)


def test_unresolved_file_type_fails_as_validation_error(monkeypatch, processor, five_point_gpx):
    from waybinder_tracks.processing import orchestrator

    monkeypatch.setattr(orchestrator, "validate", lambda *_args: ValidationResult(valid=True))
    job = processor.submit(_request(five_point_gpx))
    error = list(job.messages(timeout=10))[-1]
    assert isinstance(error, ErrorMessage)
    assert error.phase is ProcessingState.VALIDATING
    assert error.kind == "unsupported_format"
    with pytest.raises(TrackValidationError):
        job.result(1)


def test_parse_failure_reports_phase(processor):
    payload = b'<gpx version="1.1"><trk><trkseg></trkseg></trk></gpx>'
    job = processor.submit(_request(payload))
    error = list(job.messages(timeout=10))[-1]
    assert isinstance(error, ErrorMessage)
    assert error.phase is ProcessingState.PARSING
    assert error.kind == "parse_error"
    with pytest.raises(ParseError):
        job.result(1)


def test_aggregation_failure_stops_sibling_and_keeps_original_error(processor):
    payload = gpx_bytes(straight_points(20, interval_s=None))
    job = processor.submit(_request(payload, require_timestamps=True))
    error = list(job.messages(timeout=10))[-1]
    assert isinstance(error, ErrorMessage)
    assert error.phase is ProcessingState.SIMPLIFYING_AGGREGATING
    assert error.kind == "missing_timestamps"
    with pytest.raises(MissingTimestampsError):
        job.result(1)


def test_unexpected_error_is_internal(five_point_gpx):
    context = ProcessingContext(parsers={"gpx": ExplodingParser()}, cache_size=0)
    with TrackProcessor(context=context, max_workers=1) as proc:
        job = proc.submit(_request(five_point_gpx))
        error = list(job.messages(timeout=10))[-1]
    assert isinstance(error, ErrorMessage)
    assert error.kind == "internal_error"
    assert error.phase is ProcessingState.PARSING
    assert error.message == "boom"


def test_cancel_during_parsing_delivers_nothing_more(five_point_gpx):
    parser = BlockingGpxParser()
    context = ProcessingContext(parsers={"gpx": parser}, cache_size=0)
    proc = TrackProcessor(context=context, max_workers=1)
    received = []
    job = proc.submit(_request(five_point_gpx), on_message=received.append)
    assert parser.entered.wait(5), "worker never reached the parser"

    assert job.cancel()
    snapshot = list(received)
    parser.release.set()
    proc.shutdown(wait=True)

    assert received == snapshot
    assert {m.state for m in received} <= {ProcessingState.VALIDATING, ProcessingState.PARSING}
    assert not any(isinstance(m, (CompletedMessage, ErrorMessage)) for m in received)
    assert job.state is ProcessingState.CANCELLED
    assert job.cancelled and job.done()
    assert list(job.messages(timeout=1)) == []
    with pytest.raises(ProcessingCancelled):
        job.result(1)
    assert not job.cancel()


def test_submit_after_shutdown_fails_with_worker_init_error(five_point_gpx):
    proc = TrackProcessor(max_workers=1)
    proc.shutdown()
    job = proc.submit(_request(five_point_gpx))
    assert job.done()
    messages = list(job.messages(timeout=1))
    assert len(messages) == 1
    assert messages[0].kind == "worker_init_error"
    with pytest.raises(WorkerInitError):
        job.result(1)


def test_parsed_tracks_are_cached_per_context(processor, five_point_gpx):
    processor.process(_request(five_point_gpx), timeout=10)
    processor.process(_request(five_point_gpx), timeout=10)
    assert processor.context.cache_hits == 1
    processor.context.clear()
    processor.process(_request(five_point_gpx), timeout=10)
    assert processor.context.cache_hits == 1


def test_concurrent_jobs_are_independent(processor):
    payloads = [gpx_bytes(straight_points(n)) for n in (3, 5, 8, 13)]
    jobs = [processor.submit(_request(p)) for p in payloads]
    results = [job.result(10) for job in jobs]
    assert [len(r.track) for r in results] == [3, 5, 8, 13]
    assert len({job.job_id for job in jobs}) == 4


def test_callback_errors_do_not_break_processing(processor, five_point_gpx):
    def bad_callback(message):
        raise ValueError("listener bug")

    result = processor.process(_request(five_point_gpx), on_message=bad_callback, timeout=10)
    assert result.statistics.point_count == 5


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        TrackProcessor(max_workers=0)


def test_request_requires_levels(five_point_gpx):
    with pytest.raises(ValueError):
        _request(five_point_gpx, levels=())
    with pytest.raises(ValueError):
        _request(five_point_gpx, levels=("extreme",))
    assert _request(five_point_gpx).declared_extension == "gpx"
    assert ProcessingRequest(file_bytes=b"", file_type=".KML").declared_extension == "kml"
