# Email notifications for approval workflows. Called from transaction.on_commit.
import logging

from django.contrib.auth import get_user_model

from core.emails import frontend_url, send_plain_email_safely

from .labels import label_for
from .models import ActionStatus, ApprovalCategory, ApprovalWorkflow, UserApprover, WorkflowStatus

logger = logging.getLogger(__name__)
User = get_user_model()


def _wf_title(wf: ApprovalWorkflow) -> str:
    category = label_for(ApprovalCategory, wf.category)
    return f"{category} {wf.reference_code or f'#{wf.object_id}'}"


def _approver_emails(wf: ApprovalWorkflow) -> list[str]:
    action = wf.actions.filter(sequence_order=wf.current_level, status=ActionStatus.PENDING).select_related("approval_role").first()
    if action is None or action.approval_role is None:
        return []
    user_ids = [
        c.user_id
        for c in UserApprover.objects.filter(approver_role=action.approval_role.code, is_active=True)
        if c.covers(wf.category, wf.amount)
    ]
    if not user_ids:
        return []
    return list(
        User.objects.filter(id__in=user_ids, is_active=True)
        .exclude(email__isnull=True).exclude(email="")
        .values_list("email", flat=True)
    )


def email_current_approvers(workflow_id: int, reason: str = "pending"):
    wf = ApprovalWorkflow.objects.filter(pk=workflow_id).first()
    if wf is None or wf.status != WorkflowStatus.PENDING:
        return
    to_list = _approver_emails(wf)
    if not to_list:
        logger.info("Workflow %s: no approver emails for level %s", wf.id, wf.current_level)
        return
    subject = f"[Approval Required] {_wf_title(wf)}"
    body = (
        f"Hello,\n\n"
        f"Your approval is required for {_wf_title(wf)}.\n"
        f"Amount: {wf.amount} {wf.currency}\n"
        f"Step: {wf.current_level}\n\n"
        f"Review: {frontend_url('/approvals/pending')}\n\n"
        f"Reason for this notification: {reason}."
    )
    send_plain_email_safely(subject, body, to_list)


def email_initiator_on_final(workflow_id: int, comment: str = ""):
    wf = ApprovalWorkflow.objects.select_related("initiated_by").filter(pk=workflow_id).first()
    if wf is None or wf.status == WorkflowStatus.PENDING:
        return
    initiator = wf.initiated_by
    if initiator is None or not initiator.email:
        return
    status = label_for(WorkflowStatus, wf.status)
    subject = f"[{status}] {_wf_title(wf)}"
    body = f"Hello,\n\n{_wf_title(wf)} is {status.lower()}.\n"
    if comment:
        body += f"Comment: {comment}\n"
    send_plain_email_safely(subject, body, [initiator.email])
