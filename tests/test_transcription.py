"""Tests for the observable transcription session."""
import pytest

from api.services.transcription import (
    LineStreamProducer,
    RecordingError,
    TranscriptionSession,
)

pytestmark = pytest.mark.unit


class ManualProducer:
    """Producer whose callbacks the test drives by hand."""

    def __init__(self, fail_on_start=False):
        self.fail_on_start = fail_on_start
        self.on_partial = None
        self.on_error = None
        self.stopped = False

    def start(self, on_partial, on_error):
        if self.fail_on_start:
            raise OSError("microphone unavailable")
        self.on_partial = on_partial
        self.on_error = on_error

    def stop(self):
        self.stopped = True


class TestTranscriptionSession:

    def test_partials_update_transcript(self):
        session = TranscriptionSession()
        producer = ManualProducer()
        session.start(producer)

        producer.on_partial("I met")
        producer.on_partial("I met Jerry")
        assert session.is_recording is True
        assert session.transcript == "I met Jerry"

    def test_stop_keeps_captured_text(self):
        session = TranscriptionSession()
        producer = ManualProducer()
        session.start(producer)
        producer.on_partial("I met Jerry")

        assert session.stop() == "I met Jerry"
        assert producer.stopped is True
        assert session.is_recording is False

    def test_late_partial_ignored(self):
        session = TranscriptionSession()
        producer = ManualProducer()
        session.start(producer)
        producer.on_partial("I met Jerry")
        session.stop()

        producer.on_partial("I met Jerry and garbage")
        assert session.transcript == "I met Jerry"

    def test_old_producer_cannot_touch_new_recording(self):
        session = TranscriptionSession()
        first = ManualProducer()
        session.start(first)
        session.stop()

        second = ManualProducer()
        session.start(second)
        first.on_partial("stale")
        first.on_error("stale error")
        assert session.transcript == ""
        assert session.error_message is None
        assert session.is_recording is True

    def test_start_resets_transcript(self):
        session = TranscriptionSession()
        producer = ManualProducer()
        session.start(producer)
        producer.on_partial("first")
        session.stop()

        session.start(ManualProducer())
        assert session.transcript == ""

    def test_double_start_rejected(self):
        session = TranscriptionSession()
        session.start(ManualProducer())
        with pytest.raises(RecordingError):
            session.start(ManualProducer())

    def test_start_failure(self):
        session = TranscriptionSession()
        with pytest.raises(RecordingError):
            session.start(ManualProducer(fail_on_start=True))
        assert session.is_recording is False
        assert "microphone unavailable" in session.error_message

    def test_error_stops_and_keeps_text(self):
        session = TranscriptionSession()
        producer = ManualProducer()
        session.start(producer)
        producer.on_partial("I met")
        producer.on_error("recognizer crashed")

        assert session.is_recording is False
        assert session.transcript == "I met"
        assert session.error_message == "recognizer crashed"
        assert producer.stopped is True

    def test_stop_when_idle(self):
        assert TranscriptionSession().stop() == ""


class TestObservers:

    def test_notified_on_changes(self):
        session = TranscriptionSession()
        states = []
        session.subscribe(states.append)
        producer = ManualProducer()

        session.start(producer)
        producer.on_partial("hi")
        session.stop()

        assert [s.is_recording for s in states] == [True, True, False]
        assert states[-1].transcript == "hi"

    def test_unsubscribe(self):
        session = TranscriptionSession()
        states = []
        unsubscribe = session.subscribe(states.append)
        unsubscribe()
        session.start(ManualProducer())
        assert states == []

    def test_failing_observer_does_not_break_session(self):
        session = TranscriptionSession()

        def broken(state):
            raise RuntimeError("ui gone")

        session.subscribe(broken)
        producer = ManualProducer()
        session.start(producer)
        producer.on_partial("still works")
        assert session.transcript == "still works"


class TestLineStreamProducer:

    def test_replays_cumulative_partials(self):
        session = TranscriptionSession()
        seen = []
        session.subscribe(lambda s: seen.append(s.transcript))

        session.start(LineStreamProducer(["I met Jerry.", "", "He works at Goldman."]))
        assert session.stop() == "I met Jerry. He works at Goldman."
        assert "I met Jerry." in seen
