import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from approvals.chain import APPROVED, PENDING, REJECTED, ApprovalChain
from approvals.exceptions import WorkflowStateError

from .helpers import _line_manager_id, has_app_role
from .models import AppRole, RoleRequest, RoleRequestStatus, UserRole

logger = logging.getLogger(__name__)

LINE_MANAGER_STAGE = 1
ADMIN_STAGE = 2


class _Gate:
    """
    One stage of a RoleRequest, shaped like a chain step. Decisions are kept
    in memory until apply() copies them onto the request's own columns.
    """
    sequence_order = None

    def __init__(self, request: RoleRequest):
        self.request = request
        self.status = self._initial_status()
        self.approver_id = None
        self.comments = ""
        self.acted_at = None

    def _initial_status(self):
        raise NotImplementedError

    def apply(self):
        raise NotImplementedError


class LineManagerGate(_Gate):
    sequence_order = LINE_MANAGER_STAGE

    def _initial_status(self):
        if self.request.line_manager_approved_at:
            return APPROVED
        if self.request.status == RoleRequestStatus.REJECTED:
            return REJECTED
        return PENDING

    def apply(self):
        r = self.request
        r.line_manager_approved_by_id = self.approver_id
        r.line_manager_comments = self.comments
        # stage 1 never touches the overall status
        if self.status == APPROVED:
            r.line_manager_approved_at = self.acted_at


class AdminGate(_Gate):
    sequence_order = ADMIN_STAGE

    def _initial_status(self):
        return {
            RoleRequestStatus.APPROVED: APPROVED,
            RoleRequestStatus.REJECTED: REJECTED,
        }.get(self.request.status, PENDING)

    def apply(self):
        r = self.request
        r.status = RoleRequestStatus.APPROVED if self.status == APPROVED else RoleRequestStatus.REJECTED
        r.admin_approved_by_id = self.approver_id
        r.admin_approved_at = self.acted_at
        r.admin_comments = self.comments


def _require_line_manager() -> bool:
    return bool(getattr(settings, "ROLE_REQUEST_REQUIRE_LINE_MANAGER", False))


def build_chain(request: RoleRequest, *, for_admin: bool = False) -> ApprovalChain:
    """
    Line manager first, then admin. Unless ROLE_REQUEST_REQUIRE_LINE_MANAGER
    is set, an admin may decide while the line-manager stage is still open;
    the admin chain then consists of the admin gate alone.
    """
    line, admin = LineManagerGate(request), AdminGate(request)
    if request.status != RoleRequestStatus.PENDING:
        chain = ApprovalChain([line, admin], ADMIN_STAGE)
        chain.finished = True
        return chain
    if for_admin and line.status == PENDING and not _require_line_manager():
        return ApprovalChain([admin], ADMIN_STAGE)
    level = LINE_MANAGER_STAGE if line.status == PENDING else ADMIN_STAGE
    return ApprovalChain([line, admin], level)


def _lock(request: RoleRequest) -> RoleRequest:
    return RoleRequest.objects.select_for_update().get(pk=request.pk)


def _ensure_pending(request: RoleRequest):
    if request.status != RoleRequestStatus.PENDING:
        raise WorkflowStateError(f"Role request is already {request.status}.")


def _gate(chain: ApprovalChain, order: int):
    return next((s for s in chain.steps if s.sequence_order == order), None)


def _is_line_manager(user, request: RoleRequest) -> bool:
    return request.line_manager_id is not None and request.line_manager_id == user.id


@transaction.atomic
def create_role_request(user, requested_role: str, justification: str) -> RoleRequest:
    justification = (justification or "").strip()
    if not justification:
        raise ValidationError({"justification": "A justification is required."})
    if requested_role not in AppRole.values:
        raise ValidationError({"requested_role": f"Unknown role '{requested_role}'."})
    if RoleRequest.objects.filter(user=user, requested_role=requested_role, status=RoleRequestStatus.PENDING).exists():
        raise ValidationError({"requested_role": "There is already a pending request for this role."})

    rr = RoleRequest.objects.create(
        user=user,
        requested_role=requested_role,
        justification=justification,
        line_manager_id=_line_manager_id(user),
    )
    logger.info("Role request %s created: user %s -> %s", rr.pk, user.pk, requested_role)
    return rr


@transaction.atomic
def approve_by_line_manager(request: RoleRequest, by_user, comments: str = "") -> RoleRequest:
    rr = _lock(request)
    _ensure_pending(rr)
    if not (_is_line_manager(by_user, rr) or by_user.is_admin):
        raise PermissionError("Only the requester's line manager can approve this stage.")

    chain = build_chain(rr)
    line = _gate(chain, LINE_MANAGER_STAGE)
    chain.approve(by_user.id, comments, step=line, now=timezone.now())
    line.apply()
    rr.save(update_fields=[
        "line_manager_approved_by", "line_manager_approved_at", "line_manager_comments", "updated_at",
    ])
    logger.info("Role request %s approved by line manager %s", rr.pk, by_user.pk)
    return rr


@transaction.atomic
def approve_by_admin(request: RoleRequest, by_user, comments: str = "") -> RoleRequest:
    rr = _lock(request)
    _ensure_pending(rr)
    if not by_user.is_admin:
        raise PermissionError("Only an administrator can grant roles.")

    chain = build_chain(rr, for_admin=True)
    admin = _gate(chain, ADMIN_STAGE)
    chain.approve(by_user.id, comments, step=admin, now=timezone.now())
    admin.apply()
    rr.save(update_fields=["status", "admin_approved_by", "admin_approved_at", "admin_comments", "updated_at"])

    _, created = UserRole.objects.get_or_create(user_id=rr.user_id, role=rr.requested_role)
    logger.info(
        "Role request %s approved by admin %s; role %s %s",
        rr.pk, by_user.pk, rr.requested_role, "granted" if created else "already held",
    )
    return rr


@transaction.atomic
def reject_role_request(request: RoleRequest, by_user, comments: str) -> RoleRequest:
    """Rejection is an admin decision; the line manager can only sign off or wait."""
    comments = (comments or "").strip()
    if not comments:
        raise ValidationError({"comments": "A comment is required to reject."})

    rr = _lock(request)
    _ensure_pending(rr)
    if not by_user.is_admin:
        raise PermissionError("Only an administrator can reject role requests.")

    chain = build_chain(rr, for_admin=True)
    admin = _gate(chain, ADMIN_STAGE)
    chain.reject(by_user.id, comments, step=admin, now=timezone.now())
    admin.apply()
    rr.save(update_fields=["status", "admin_approved_by", "admin_approved_at", "admin_comments", "updated_at"])
    logger.info("Role request %s rejected by admin %s", rr.pk, by_user.pk)
    return rr


def visible_role_requests(user):
    qs = RoleRequest.objects.select_related("user", "line_manager")
    if user.is_admin or has_app_role(user, AppRole.MANAGER):
        return qs
    return qs.filter(Q(user=user) | Q(line_manager=user))
