"""
Transcription session state for Contact Card.

Speech recognition itself is a black box (a TranscriptionProducer). This
module holds the observable state around it:
- is_recording, transcript, error_message
- an observer list notified on every change

Stopping a recording keeps whatever text was captured. Partial results that
arrive after stop() are ignored so they cannot overwrite the final text.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


class TranscriptionProducer(Protocol):
    """On-device recognizer interface."""

    def start(self, on_partial: Callable[[str], None], on_error: Callable[[str], None]) -> None:
        """Begin recognition. on_partial receives the full text so far."""
        ...

    def stop(self) -> None:
        """End recognition and release audio resources."""
        ...


class RecordingError(Exception):
    """Raised when a recording cannot be started."""


@dataclass(frozen=True)
class TranscriptionState:
    """Snapshot passed to observers."""
    is_recording: bool
    transcript: str
    error_message: Optional[str]


Observer = Callable[[TranscriptionState], None]


class TranscriptionSession:
    """Observable wrapper around a transcription producer."""

    def __init__(self):
        self._lock = threading.RLock()
        self._observers: list[Observer] = []
        self._producer: Optional[TranscriptionProducer] = None
        self._generation = 0
        self.is_recording = False
        self.transcript = ""
        self.error_message: Optional[str] = None

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer. Returns a function that unsubscribes it."""
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def state(self) -> TranscriptionState:
        with self._lock:
            return TranscriptionState(self.is_recording, self.transcript, self.error_message)

    def _notify(self) -> None:
        snapshot = self.state()
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(snapshot)
            except Exception as e:
                logger.error(f"Transcription observer failed: {e}")

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start(self, producer: TranscriptionProducer) -> None:
        """
        Start recording with a fresh transcript.

        Raises:
            RecordingError: If already recording or the producer fails to start
        """
        with self._lock:
            if self.is_recording:
                raise RecordingError("Already recording")
            self._generation += 1
            generation = self._generation
            self._producer = producer
            self.transcript = ""
            self.error_message = None
            self.is_recording = True

        def on_partial(text: str) -> None:
            with self._lock:
                if generation != self._generation or not self.is_recording:
                    return
                self.transcript = text
            self._notify()

        def on_error(message: str) -> None:
            with self._lock:
                if generation != self._generation:
                    return
                self.error_message = message
            logger.warning(f"Recognition error: {message}")
            self.stop()

        try:
            producer.start(on_partial, on_error)
        except Exception as e:
            with self._lock:
                self.is_recording = False
                self._producer = None
                self.error_message = f"Failed to start recording: {e}"
            self._notify()
            raise RecordingError(str(e)) from e

        self._notify()

    def stop(self) -> str:
        """Stop recording and return the captured transcript."""
        with self._lock:
            if not self.is_recording:
                return self.transcript
            producer = self._producer
            self.is_recording = False
            self._producer = None

        try:
            if producer is not None:
                producer.stop()
        except Exception as e:
            logger.error(f"Error stopping recognizer: {e}")
        finally:
            self._notify()

        return self.transcript


class LineStreamProducer:
    """
    Producer that replays text lines as growing partial results.

    Stands in for the on-device recognizer when a transcript already exists
    as text (CLI imports, tests).
    """

    def __init__(self, lines: Iterable[str]):
        self.lines = [line.strip() for line in lines if line.strip()]
        self.stopped = False

    def start(self, on_partial: Callable[[str], None], on_error: Callable[[str], None]) -> None:
        text = ""
        for line in self.lines:
            if self.stopped:
                break
            text = f"{text} {line}".strip()
            on_partial(text)

    def stop(self) -> None:
        self.stopped = True
