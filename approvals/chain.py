"""
Strictly sequential approval over an ordered list of steps.

A step is any object exposing `sequence_order`, `status`, `approver_id`,
`comments` and `acted_at` (WorkflowAction rows, role-request gates, ...).
The chain mutates the steps in memory; persisting them is the caller's job.

Outcomes returned by approve()/reject():
  "moved"     -> step approved, another step is now current
  "completed" -> last step approved, chain finished
  "rejected"  -> step rejected, chain finished (later steps stay pending)
"""
from django.core.exceptions import ValidationError
from django.utils import timezone

from .exceptions import WorkflowStateError

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"


class ApprovalChain:
    def __init__(self, steps, current_level: int):
        self.steps = sorted(steps, key=lambda s: s.sequence_order)
        self.current_level = current_level
        self.finished = False

    @property
    def last_order(self) -> int:
        return self.steps[-1].sequence_order if self.steps else 0

    def current_step(self):
        if self.finished:
            return None
        for step in self.steps:
            if step.sequence_order == self.current_level:
                return step if step.status == PENDING else None
        return None

    def next_order_after(self, order: int):
        later = [s.sequence_order for s in self.steps if s.sequence_order > order]
        return min(later) if later else None

    def actionable(self, step=None):
        current = self.current_step()
        if current is None:
            raise WorkflowStateError("There is no pending step at the current level.")
        if step is None:
            return current
        if step.sequence_order != current.sequence_order or step.status != PENDING:
            raise WorkflowStateError(
                f"Step {step.sequence_order} cannot be acted on; the current step is {current.sequence_order}."
            )
        return current

    def approve(self, actor_id, comment: str = "", step=None, now=None) -> str:
        step = self.actionable(step)
        step.status = APPROVED
        step.approver_id = actor_id
        step.comments = (comment or "").strip()
        step.acted_at = now or timezone.now()

        next_order = self.next_order_after(step.sequence_order)
        if next_order is None:
            self.finished = True
            return "completed"
        self.current_level = next_order
        return "moved"

    def reject(self, actor_id, comment: str, step=None, now=None) -> str:
        comment = (comment or "").strip()
        if not comment:
            raise ValidationError({"comments": "A comment is required to reject."})
        step = self.actionable(step)
        step.status = REJECTED
        step.approver_id = actor_id
        step.comments = comment
        step.acted_at = now or timezone.now()
        self.finished = True
        return "rejected"
