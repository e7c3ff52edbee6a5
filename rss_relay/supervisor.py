"""Start one worker per configured feed and wait for shutdown."""

from __future__ import annotations

import concurrent.futures
import logging
import signal
import threading
from typing import Callable, List, Optional

import requests
from requests.adapters import HTTPAdapter

from .models import Configuration, FeedConfig
from .worker import CycleResult, FeedWorker

logger = logging.getLogger(__name__)

WorkerFactory = Callable[[FeedConfig, requests.Session], FeedWorker]


def build_session(pool_size: int = 10) -> requests.Session:
    """Create the HTTP session shared by every worker."""
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class Supervisor:
    """Owns the feed workers for the lifetime of the process."""

    def __init__(
        self,
        config: Configuration,
        session: Optional[requests.Session] = None,
        worker_factory: WorkerFactory = FeedWorker,
    ) -> None:
        self.config = config
        self.session = session or build_session(max(len(config.feeds), 1))
        self.workers: List[FeedWorker] = [
            worker_factory(feed, self.session) for feed in config.feeds
        ]
        self.stop_event = threading.Event()
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._futures: List[concurrent.futures.Future] = []

    def start(self) -> None:
        """Submit one long-running worker per feed."""
        if self._executor is not None:
            raise RuntimeError("Supervisor already started.")
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(len(self.workers), 1), thread_name_prefix="feed"
        )
        self._futures = [
            self._executor.submit(worker.run, self.stop_event)
            for worker in self.workers
        ]
        logger.info("Started %d feed workers", len(self._futures))

    def stop(self) -> None:
        """Ask every worker to stop at its next suspension point."""
        self.stop_event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown is requested; returns True once it is."""
        return self.stop_event.wait(timeout)

    def shutdown(self) -> None:
        self.stop()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("Supervisor shut down")

    def install_signal_handlers(self) -> None:
        def handle_signal(signum, frame):
            logger.info("Received signal %s; shutting down", signum)
            self.stop()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

    def run(self) -> None:
        """Run every worker until SIGINT or SIGTERM is received."""
        self.install_signal_handlers()
        self.start()
        while not self.wait(1.0):
            pass
        self.shutdown()

    def run_once(self) -> List[CycleResult]:
        """Run a single cycle for every feed concurrently and return the results."""
        results: List[CycleResult] = []
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=max(len(self.workers), 1)
        ) as executor:
            future_to_worker = {
                executor.submit(worker.run_cycle): worker for worker in self.workers
            }
            for future in concurrent.futures.as_completed(future_to_worker):
                worker = future_to_worker[future]
                try:
                    results.append(future.result())
                except Exception:  # noqa: BLE001
                    logger.exception("Failed to process feed %s", worker.feed.name)
                    results.append(CycleResult())
        return results
