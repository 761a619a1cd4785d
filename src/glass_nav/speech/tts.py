# tts.py
# Voice output for the glasses: a queue-fed worker thread speaks one cue at a
# time with pyttsx3, so navigation never waits on the speech engine.

import logging
import queue
import threading
from typing import Callable, Optional

import pyttsx3

logger = logging.getLogger(__name__)

PREFERRED_VOICES = ["Samantha", "Victoria", "Ava", "Moira", "Karen", "Tessa", "Kathy"]


def init_tts(rate: int = 165, volume: float = 1.0):
    engine = pyttsx3.init()
    engine.setProperty("rate", rate)
    engine.setProperty("volume", volume)

    # Pick a clearer voice when one is installed
    for v in engine.getProperty("voices"):
        if any(p.lower() in (v.name or "").lower() for p in PREFERRED_VOICES):
            engine.setProperty("voice", v.id)
            break

    return engine


class Speaker:
    """
    Asynchronous speech sink.

    Args:
        engine_factory: Builds the TTS engine on the worker thread
                        (pyttsx3 engines are not shareable across threads).
        max_pending:    Oldest queued cues are dropped beyond this many.
    """

    def __init__(self, engine_factory: Callable = init_tts, max_pending: int = 5) -> None:
        self._engine_factory = engine_factory
        self._queue: "queue.Queue[Optional[str]]" = queue.Queue()
        self._max_pending = max_pending
        self._thread = threading.Thread(target=self._worker, name="tts", daemon=True)
        self._thread.start()

    def speak(self, text: str) -> None:
        text = (text or "").strip()
        if not text:
            return
        # Stale turn cues are worse than none.
        while self._queue.qsize() >= self._max_pending:
            try:
                dropped = self._queue.get_nowait()
                self._queue.task_done()
                logger.debug(f"Dropped stale voice cue: {dropped}")
            except queue.Empty:
                break
        self._queue.put(text)

    def wait(self) -> None:
        """Block until everything queued so far has been spoken."""
        self._queue.join()

    def close(self, timeout: float = 5.0) -> None:
        self._queue.put(None)
        self._thread.join(timeout=timeout)

    def _worker(self) -> None:
        engine = None
        while True:
            text = self._queue.get()
            try:
                if text is None:
                    break
                if engine is None:
                    engine = self._engine_factory()
                engine.say(text)
                engine.runAndWait()
            except Exception as e:
                logger.error(f"TTS error: {e}")
            finally:
                self._queue.task_done()
