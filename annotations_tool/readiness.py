# annotations_tool/readiness.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from PyQt5.QtCore import QObject, pyqtSignal


logger = logging.getLogger(__name__)


@dataclass
class _Transition:
    """Flag set owned by a single identity transition."""
    identity: Any
    flags: Dict[str, bool]
    errors: Dict[str, str] = field(default_factory=dict)
    settled: bool = False

    def complete(self) -> bool:
        return all(self.flags.values())


class ReadinessBarrier(QObject):
    """
    Joins the loads of a video's dependent collections after its identity changes.

    trigger() rebinds every collection URL to the new identity first, then for each
    collection either marks it ready (already populated) or issues a load that marks
    it ready on completion. Loads run concurrently and may finish in any order;
    ready(identity) is emitted exactly once per transition when every flag is set.
    A load that fails (after its retries) emits failed(identity, name, message) and
    the transition never becomes ready.

    Every trigger() gets its own flag set, so a second transition started before the
    first settles can't mark or complete the first one.
    """
    ready = pyqtSignal(object)
    failed = pyqtSignal(object, str, str)

    def __init__(self, collections: Dict[str, Any], parent=None):
        super().__init__(parent)
        self._collections = dict(collections)
        self._pending: List[_Transition] = []

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._collections)

    def set_collection(self, name: str, collection) -> None:
        self._collections[name] = collection

    def pending(self) -> List[Any]:
        return [t.identity for t in self._pending]

    def trigger(self, entity, new_identity) -> None:
        if new_identity is None:
            raise ValueError("readiness can only be awaited for a non-empty identity")

        for coll in self._collections.values():
            coll.set_url(entity)

        transition = _Transition(identity=new_identity, flags={n: False for n in self._collections})
        self._pending.append(transition)
        logger.info("Loading dependents of %r: %s", new_identity, ", ".join(self._collections))

        for name, coll in self._collections.items():
            if len(coll) > 0:
                self._mark(transition, name)
            else:
                coll.load(
                    new_identity,
                    on_success=lambda _records, n=name: self._mark(transition, n),
                    on_error=lambda message, n=name: self._fail(transition, n, message),
                )

    def _mark(self, transition: _Transition, name: str) -> None:
        if transition.settled or transition.flags.get(name):
            return
        transition.flags[name] = True
        if not transition.complete():
            if transition.errors and self._all_reported(transition):
                self._settle(transition)
            return
        self._settle(transition)
        logger.info("Dependents of %r ready", transition.identity)
        self.ready.emit(transition.identity)

    def _fail(self, transition: _Transition, name: str, message: str) -> None:
        if transition.settled:
            return
        transition.errors[name] = message
        self.failed.emit(transition.identity, name, message)
        if self._all_reported(transition):
            self._settle(transition)

    @staticmethod
    def _all_reported(transition: _Transition) -> bool:
        return all(done or name in transition.errors for name, done in transition.flags.items())

    def _settle(self, transition: _Transition) -> None:
        transition.settled = True
        self._pending = [t for t in self._pending if t is not transition]
