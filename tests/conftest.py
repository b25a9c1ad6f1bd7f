"""
Shared fixtures: an offscreen QApplication and a store whose completions the
tests trigger by hand, in any order.
"""
import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import pytest

from annotations_tool.collection import LoadPolicy


@dataclass
class StoreCall:
    op: str
    url: str
    rid: Any
    payload: Any
    on_success: Callable
    on_error: Callable


class FakeStore:
    """Records every request; succeed()/fail() complete the oldest matching one."""

    def __init__(self):
        self.calls: List[StoreCall] = []
        self.history: List[StoreCall] = []

    def _record(self, call: StoreCall) -> None:
        self.calls.append(call)
        self.history.append(call)

    def fetch(self, url, on_success, on_error):
        self._record(StoreCall("fetch", url, None, None, on_success, on_error))

    def create(self, url, payload, on_success, on_error):
        self._record(StoreCall("create", url, None, payload, on_success, on_error))

    def update(self, url, rid, payload, on_success, on_error):
        self._record(StoreCall("update", url, rid, payload, on_success, on_error))

    def destroy(self, url, rid, on_success, on_error):
        self._record(StoreCall("destroy", url, rid, None, on_success, on_error))

    def pending(self, op: Optional[str] = None) -> List[StoreCall]:
        return [c for c in self.calls if op is None or c.op == op]

    def pending_urls(self, op: str = "fetch") -> List[str]:
        return [c.url for c in self.pending(op)]

    def _take(self, url: str, op: str) -> StoreCall:
        for i, call in enumerate(self.calls):
            if call.url == url and call.op == op:
                return self.calls.pop(i)
        raise AssertionError(f"no pending {op} for {url}; pending: {self.calls}")

    def succeed(self, url: str, result: Any = None, op: str = "fetch") -> None:
        self._take(url, op).on_success([] if result is None and op == "fetch" else result)

    def fail(self, url: str, message: str = "boom", op: str = "fetch") -> None:
        self._take(url, op).on_error(message)


class ImmediateScheduler:
    """Runs scheduled callbacks at once and remembers the requested delays."""

    def __init__(self):
        self.delays: List[int] = []

    def __call__(self, delay_ms, fn):
        self.delays.append(delay_ms)
        fn()


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """Ensure a QApplication exists for signals, timers and widgets."""
    from PyQt5.QtWidgets import QApplication
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def scheduler():
    return ImmediateScheduler()


@pytest.fixture
def no_retry():
    return LoadPolicy(retries=0, backoff_ms=0)
