# scheduler.py
# Per-session serial execution: one worker thread drains a queue of callables,
# so location fixes, commands and timer firings never run concurrently.
# NavigationManager only sees the Scheduler interface.

import logging
import queue
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DoneCallback = Callable[[Any, Optional[BaseException]], None]


class Scheduler(ABC):
    """What the navigation core needs from its runtime."""

    @abstractmethod
    def post(self, fn: Callable, *args) -> None:
        """Run fn(*args) on the session's serial execution point."""

    @abstractmethod
    def start_periodic(self, name: str, period_s: float, fn: Callable[[], None]) -> None:
        """(Re)start a named repeating activity; an existing one with that name is replaced."""

    @abstractmethod
    def cancel_periodic(self, name: str) -> None:
        ...

    @abstractmethod
    def is_periodic_active(self, name: str) -> bool:
        ...

    @abstractmethod
    def run_async(self, work: Callable[[], Any], on_done: DoneCallback) -> None:
        """
        Run `work` off the serial execution point, then deliver
        on_done(result, error) back onto it.
        """

    def cancel_all(self) -> None:
        for name in list(self.active_periodic()):
            self.cancel_periodic(name)

    @abstractmethod
    def active_periodic(self) -> List[str]:
        ...


# ---------------------------------------------------------------------------
# Threaded runtime
# ---------------------------------------------------------------------------

class SessionWorker:
    """
    Single daemon thread executing submitted callables in order.

    Args:
        name: Thread name, handy in logs.
    """

    def __init__(self, name: str = "nav-session") -> None:
        self._queue: "queue.Queue[Optional[Tuple[Future, Callable, tuple, dict]]]" = queue.Queue()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @property
    def in_worker(self) -> bool:
        return threading.current_thread() is self._thread

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        """Queue fn for execution; from the worker thread itself it runs inline."""
        if self.in_worker:
            future: Future = Future()
            future.set_running_or_notify_cancel()
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)
            return future

        if self._closed:
            raise RuntimeError("Session worker is closed.")
        future = Future()
        self._queue.put((future, fn, args, kwargs))
        return future

    def close(self, timeout: float = 5.0) -> None:
        """Stop after the already queued work; waits unless called from the worker."""
        if self._closed:
            return
        self._closed = True
        self._queue.put(None)
        if not self.in_worker:
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    break
                future, fn, args, kwargs = item
                if not future.set_running_or_notify_cancel():
                    continue
                try:
                    future.set_result(fn(*args, **kwargs))
                except Exception as e:
                    logger.exception(f"Session task {getattr(fn, '__name__', fn)} failed.")
                    future.set_exception(e)
            finally:
                self._queue.task_done()


class PeriodicTask:
    """
    Posts `fn` to the session worker every `period_s` seconds until cancelled.

    A firing that is still queued when the task is cancelled is skipped.
    """

    def __init__(self, name: str, period_s: float, fn: Callable[[], None], post: Callable[..., None]) -> None:
        self.name = name
        self.period_s = period_s
        self._fn = fn
        self._post = post
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"periodic-{name}", daemon=True)
        self._thread.start()

    @property
    def active(self) -> bool:
        return not self._stop.is_set()

    def cancel(self) -> None:
        self._stop.set()
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout=1.0)

    def _run(self) -> None:
        while not self._stop.wait(self.period_s):
            try:
                self._post(self._fire)
            except RuntimeError:
                # Worker already closed.
                break

    def _fire(self) -> None:
        if self.active:
            self._fn()


class ThreadedScheduler(Scheduler):
    """
    Scheduler backed by a SessionWorker, timer threads and a shared thread pool.

    Args:
        worker:   The session's serial execution point.
        executor: Pool for provider calls; shared between sessions.
    """

    def __init__(self, worker: SessionWorker, executor: ThreadPoolExecutor) -> None:
        self._worker = worker
        self._executor = executor
        self._tasks: Dict[str, PeriodicTask] = {}
        self._lock = threading.Lock()
        self._shut_down = False

    def post(self, fn: Callable, *args) -> None:
        if self._shut_down:
            return
        try:
            self._worker.submit(fn, *args)
        except RuntimeError:
            logger.debug("Dropped work posted after session close.")

    def start_periodic(self, name: str, period_s: float, fn: Callable[[], None]) -> None:
        if self._shut_down:
            return
        self.cancel_periodic(name)
        task = PeriodicTask(name, period_s, fn, self._worker.submit)
        with self._lock:
            self._tasks[name] = task

    def cancel_periodic(self, name: str) -> None:
        with self._lock:
            task = self._tasks.pop(name, None)
        if task:
            task.cancel()

    def is_periodic_active(self, name: str) -> bool:
        with self._lock:
            task = self._tasks.get(name)
        return bool(task and task.active)

    def active_periodic(self) -> List[str]:
        with self._lock:
            return [name for name, task in self._tasks.items() if task.active]

    def run_async(self, work: Callable[[], Any], on_done: DoneCallback) -> None:
        if self._shut_down:
            return
        future = self._executor.submit(work)
        future.add_done_callback(lambda f: self._deliver(f, on_done))

    def shutdown(self) -> None:
        """Cancel every periodic task and drop async results that arrive later."""
        self._shut_down = True
        self.cancel_all()

    def _deliver(self, future: Future, on_done: DoneCallback) -> None:
        error = future.exception()
        result = None if error else future.result()
        self.post(on_done, result, error)


# ---------------------------------------------------------------------------
# Manual runtime (simulation, tests)
# ---------------------------------------------------------------------------

class ManualScheduler(Scheduler):
    """
    Everything runs inline on the caller's thread; time is driven explicitly.

    Args:
        defer_async: Hold run_async jobs until run_pending() instead of running
                     them immediately.
    """

    def __init__(self, defer_async: bool = False) -> None:
        self.defer_async = defer_async
        self.periodic: Dict[str, Tuple[float, Callable[[], None]]] = {}
        self.pending: List[Tuple[Callable[[], Any], DoneCallback]] = []

    def post(self, fn: Callable, *args) -> None:
        fn(*args)

    def start_periodic(self, name: str, period_s: float, fn: Callable[[], None]) -> None:
        self.periodic[name] = (period_s, fn)

    def cancel_periodic(self, name: str) -> None:
        self.periodic.pop(name, None)

    def is_periodic_active(self, name: str) -> bool:
        return name in self.periodic

    def active_periodic(self) -> List[str]:
        return list(self.periodic)

    def fire(self, name: str) -> None:
        """Run one firing of a periodic activity."""
        self.periodic[name][1]()

    def run_async(self, work: Callable[[], Any], on_done: DoneCallback) -> None:
        if self.defer_async:
            self.pending.append((work, on_done))
        else:
            self._complete(work, on_done)

    def run_pending(self) -> int:
        """Complete every deferred job in submission order; returns how many ran."""
        jobs, self.pending = self.pending, []
        for work, on_done in jobs:
            self._complete(work, on_done)
        return len(jobs)

    @staticmethod
    def _complete(work: Callable[[], Any], on_done: DoneCallback) -> None:
        try:
            result = work()
        except Exception as e:
            on_done(None, e)
        else:
            on_done(result, None)
