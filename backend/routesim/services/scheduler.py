"""
Fixed-interval tick driver.

One dedicated thread calls the tick callback at a fixed cadence. Ticks are
strictly serial: the next wait only starts after the previous callback
returned. Cancellation is cooperative; stop() lets an in-flight tick finish.
"""

import logging
import threading
from typing import Callable, Optional


logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 1.0  # seconds


class TickScheduler:
    """
    Periodic driver for the playback engine.

    The callback returns False to end the driver (e.g. the route completed).
    """

    def __init__(
        self,
        callback: Callable[[], bool],
        interval_s: float = DEFAULT_TICK_INTERVAL,
        name: str = "playback-ticker",
    ):
        if interval_s <= 0:
            raise ValueError(f"Tick interval must be positive, got {interval_s}")
        self._callback = callback
        self._interval = interval_s
        self._name = name
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._restart_requested = False
        self.tick_count = 0

    @property
    def interval_s(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        """
        Start the driver thread.

        If it is already running, the driver is asked to keep going even
        if the in-flight tick decides to end it.
        """
        with self._lock:
            if self.running:
                self._restart_requested = True
                return
            self._restart_requested = False
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name=self._name,
                daemon=True,
            )
            self._thread.start()
        logger.debug(f"Tick scheduler started ({self._interval}s interval)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop the driver and wait for an in-flight tick to finish.

        Safe to call from inside the tick callback; the driver thread is
        not joined in that case.
        """
        with self._lock:
            thread = self._thread
            self._stop_event.set()
            self._thread = None
            self._restart_requested = False
        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug("Tick scheduler stopped")

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self._interval):
            with self._lock:
                self._restart_requested = False
            self.tick_count += 1
            try:
                keep_going = self._callback()
            except Exception:
                logger.exception("Tick failed")
                keep_going = True
            if keep_going:
                continue
            # Ending and start() are serialized by the lock
            with self._lock:
                if self._restart_requested and not stop_event.is_set():
                    self._restart_requested = False
                    continue
                stop_event.set()
                if self._thread is threading.current_thread():
                    self._thread = None
            break
