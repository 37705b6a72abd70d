# procurement/approval_service.py
import logging

from django.db import transaction

from approvals.exceptions import WorkflowStateError
from approvals.models import ApprovalCategory, ApprovalWorkflow
from approvals.services import get_workflow, initiate_workflow, pending_for_user, record_decision
from users.helpers import user_department

from .models import PurchaseRequest

logger = logging.getLogger(__name__)


# --------- Submit PR (uses core engine) ---------
@transaction.atomic
def submit_purchase_request(pr: PurchaseRequest, by_user) -> ApprovalWorkflow:
    """
    Matches the approval rule for the PR total and the requester's department,
    then starts the workflow.
    The PR status follows through PurchaseRequest.handle_approval_event.
    """
    pr = PurchaseRequest.objects.select_for_update().get(pk=pr.pk)
    if pr.status not in ('draft', 'rejected'):
        raise WorkflowStateError(f"Purchase request {pr.code} is already {pr.status}.")

    wf = initiate_workflow(
        pr,
        ApprovalCategory.PURCHASE_REQUEST,
        pr.total_amount,
        department=user_department(pr.requested_by or by_user),
        currency=pr.currency,
        reference_code=pr.code,
        by_user=by_user,
    )
    logger.info("PR %s submitted by user %s (workflow %s, %s)", pr.code, by_user.pk, wf.pk, wf.status)
    return wf


# --------- Decide on PR (uses core engine) ---------
@transaction.atomic
def decide(pr: PurchaseRequest, user, approve: bool, comment: str = ""):
    if pr.status != 'submitted':
        raise WorkflowStateError(f"Purchase request {pr.code} is not awaiting approval.")
    wf = get_workflow(pr)
    wf, action, outcome = record_decision(wf, user, approve, comment)
    pr.refresh_from_db()
    return wf, outcome


def pending_purchase_requests(user):
    ids = [
        wf.object_id
        for wf in pending_for_user(user, category=ApprovalCategory.PURCHASE_REQUEST)
    ]
    return PurchaseRequest.objects.filter(id__in=ids, status='submitted')
