"""
Reconciliation: accepted candidate tasks -> persisted tasks.

Every task created here starts in TODO and carries the AI provenance tag.
Storage is delegated to TaskStore.create_task, so all store validation
still applies.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .errors import TaskboardError
from .schema import CandidateTask, Task, TaskStatus
from .store import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "AI Assistant"


@dataclass
class ReconcileResult:
    """Outcome for one candidate of a batch."""
    candidate: CandidateTask
    task: Optional[Task] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.task is not None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ok": self.ok, "candidate": self.candidate.to_dict()}
        if self.ok:
            data["task"] = self.task.to_dict()
        else:
            data["error"] = self.error
        return data


class Reconciler:
    """Turns candidate tasks into stored tasks for one owner at a time."""

    def __init__(self, store: TaskStore, source_label: str = DEFAULT_SOURCE,
                 max_workers: int = 1):
        self.store = store
        self.source_label = source_label
        self.max_workers = max(1, max_workers)

    def reconcile(self, candidate: CandidateTask, owner_id: int) -> Task:
        """Persist one candidate as a TODO task tagged as AI generated."""
        data = candidate.to_task_input()
        data.update({
            "status": TaskStatus.TODO,
            "is_ai_generated": True,
            "source": self.source_label,
        })
        task = self.store.create_task(owner_id, data)
        logger.info("Reconciled AI task %s: %s", task.id, task.title)
        return task

    def _reconcile_one(self, candidate: CandidateTask, owner_id: int) -> ReconcileResult:
        try:
            return ReconcileResult(candidate=candidate, task=self.reconcile(candidate, owner_id))
        except TaskboardError as e:
            logger.warning("Failed to reconcile %r: %s", candidate.title, e.detail)
            return ReconcileResult(candidate=candidate, error=e.detail)

    def reconcile_all(self, candidates: Sequence[CandidateTask],
                      owner_id: int) -> List[ReconcileResult]:
        """
        Persist each candidate independently.

        One failure never blocks the others. Results line up with the input
        list; the ids the store assigns carry no ordering guarantee.
        """
        if self.max_workers == 1 or len(candidates) <= 1:
            return [self._reconcile_one(c, owner_id) for c in candidates]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(lambda c: self._reconcile_one(c, owner_id), candidates))
