"""Background sweep of expired import sessions."""

import threading
from typing import Optional

from logger import get_logger

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 300


class CleanupScheduler:
    """Deletes expired sessions from a SessionRegistry on a fixed interval.

    Runs in a daemon thread. Sessions that a preview or execute currently holds
    are skipped by the registry and picked up on a later sweep.

    Args:
        registry: SessionRegistry to sweep.
        interval_seconds: Seconds between sweeps.
    """

    def __init__(self, registry, interval_seconds: float = DEFAULT_INTERVAL_SECONDS):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.registry = registry
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def sweep_once(self) -> int:
        """Delete every idle expired session now.

        Returns:
            Number of sessions deleted.
        """
        deleted = self.registry.delete_expired()
        if deleted:
            logger.info(f"Cleanup sweep deleted {deleted} expired session(s)")
        else:
            logger.debug("Cleanup sweep found no expired sessions")
        return deleted

    def _run(self) -> None:
        logger.info(f"Session cleanup running every {self.interval_seconds}s")
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.sweep_once()
            except Exception as e:
                # Keep the loop alive, the next sweep retries
                logger.exception(f"Cleanup sweep failed: {e}")

    def start(self) -> None:
        """Start the sweep thread. Starting a running scheduler is a no-op."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="fillbook-session-cleanup", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> int:
        """Stop the sweep thread, then delete every remaining session.

        The final purge is best effort: failures are logged, not raised.

        Args:
            timeout: Seconds to wait for the thread to finish.

        Returns:
            Number of sessions deleted by the final purge.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

        try:
            purged = self.registry.purge_all()
        except Exception as e:
            logger.exception(f"Final session purge failed: {e}")
            return 0
        logger.info(f"Session cleanup stopped, purged {purged} session(s)")
        return purged

    def __enter__(self) -> "CleanupScheduler":
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.stop()
