from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from holddesk.services.holds_s import expire_stale_holds

logger = logging.getLogger(__name__)


class HoldSweeper:
    """Periodically flips overdue active holds to expired.

    Every state-changing hold operation re-checks the deadline itself, so a
    late or missed sweep only delays the ``expired`` status and never lets an
    overdue hold be extended or converted. ``run_once`` is what tests call
    directly with a fixed clock.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        interval_seconds: float,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than 0")
        self._session_factory = session_factory
        self._interval_seconds = float(interval_seconds)
        self._clock = clock
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        now = self._clock() if self._clock is not None else None
        db = self._session_factory()
        try:
            expired_count = expire_stale_holds(db, now=now)
            db.commit()
            return expired_count
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _run_loop(self) -> None:
        logger.info(
            "hold sweeper started (interval=%.0f seconds)",
            self._interval_seconds,
        )
        while not self._stop_event.wait(self._interval_seconds):
            try:
                self.run_once()
            except Exception:  # noqa: BLE001
                logger.exception("hold sweep failed")
        logger.info("hold sweeper stopped")

    def start(self) -> None:
        if self.is_running:
            logger.info("hold sweeper already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="hold-sweeper",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 10.0) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
