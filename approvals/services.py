import json
import logging
from decimal import Decimal
from typing import NamedTuple, Optional

from django.contrib.contenttypes.models import ContentType
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.db.models import F, Prefetch, Q
from django.forms.models import model_to_dict
from django.utils import timezone

from users.helpers import APPROVAL_OVERRIDE_ROLES, has_app_role

from .chain import ApprovalChain
from .exceptions import NoApprovalPolicy, WorkflowStateError
from .models import (
    ActionStatus, ApprovalAuditLog, ApprovalCategory, ApprovalMatrixVersion, ApprovalOverride, ApprovalRole,
    ApprovalRule, ApprovalThreshold, ApprovalWorkflow, RuleApprover, UserApprover, WorkflowAction,
    WorkflowStatus,
)
from . import notifications

logger = logging.getLogger(__name__)


class MatchResult(NamedTuple):
    rule: Optional[ApprovalRule]
    auto_approved: bool
    approval_path: list


# --------- Audit & versioning ---------
def _jsonable(value):
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


def _as_dict(instance):
    if instance is None:
        return None
    data = model_to_dict(instance)
    data["id"] = instance.pk
    return _jsonable(data)


def log_audit(action: str, entity_type: str, entity_id, *, old_values=None, new_values=None, by_user=None):
    return ApprovalAuditLog.objects.create(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        old_values=_jsonable(old_values) if old_values is not None else None,
        new_values=_jsonable(new_values) if new_values is not None else None,
        performed_by=by_user if getattr(by_user, "is_authenticated", False) else None,
    )


def matrix_state() -> dict:
    return {
        "rules": [_as_dict(r) for r in ApprovalRule.objects.order_by("id")],
        "roles": [_as_dict(r) for r in ApprovalRole.objects.order_by("id")],
        "approvers": [_as_dict(a) for a in RuleApprover.objects.order_by("id")],
        "overrides": [_as_dict(o) for o in ApprovalOverride.objects.order_by("id")],
    }


@transaction.atomic
def create_matrix_snapshot(change_summary: str, by_user=None) -> ApprovalMatrixVersion:
    # FOR UPDATE cannot be combined with aggregates on postgres
    last = (
        ApprovalMatrixVersion.objects.select_for_update()
        .order_by("-version_number")
        .values_list("version_number", flat=True)
        .first()
    ) or 0
    return ApprovalMatrixVersion.objects.create(
        version_number=last + 1,
        snapshot=matrix_state(),
        change_summary=change_summary[:500],
        changed_by=by_user if getattr(by_user, "is_authenticated", False) else None,
    )


def export_matrix() -> dict:
    data = matrix_state()
    data.update({
        "exportedAt": timezone.now().isoformat(),
        "version": "1.0",
        "erpCompatibility": ["SAP", "Odoo", "Zoho", "Oracle", "Dynamics"],
    })
    return data


# --------- Matrix maintenance ---------
def _full_clean(instance, exclude=None):
    instance.full_clean(exclude=exclude, validate_unique=True)


@transaction.atomic
def add_role(data: dict, by_user=None) -> ApprovalRole:
    role = ApprovalRole(**data)
    _full_clean(role)
    role.save()
    log_audit("AddRole", "approval_roles", role.pk, new_values=_as_dict(role), by_user=by_user)
    return role


@transaction.atomic
def edit_role(role: ApprovalRole, updates: dict, by_user=None) -> ApprovalRole:
    old = _as_dict(role)
    for field, value in updates.items():
        setattr(role, field, value)
    _full_clean(role)
    role.save()
    log_audit("EditRole", "approval_roles", role.pk, old_values=old, new_values=_as_dict(role), by_user=by_user)
    return role


def bands_overlap(a_min, a_max, b_min, b_max) -> bool:
    """
    Bands are compared half-open, [min, max), so adjacent bands such as
    0–10000 and 10000–50000 do not overlap. None means unbounded.
    """
    a_starts_before_b_ends = b_max is None or a_min < b_max
    b_starts_before_a_ends = a_max is None or b_min < a_max
    return a_starts_before_b_ends and b_starts_before_a_ends


def check_band_overlap(rule: ApprovalRule):
    """Bands only compete within the same category and department scope."""
    if not rule.is_active:
        return
    others = ApprovalRule.objects.filter(is_active=True, category=rule.category)
    if rule.department:
        others = others.filter(department=rule.department)
    else:
        others = others.filter(department__isnull=True)
    if rule.pk:
        others = others.exclude(pk=rule.pk)
    for other in others:
        if bands_overlap(rule.min_amount, rule.max_amount, other.min_amount, other.max_amount):
            upper = other.max_amount if other.max_amount is not None else "∞"
            scope = f"category {rule.category}"
            if rule.department:
                scope += f", department {rule.department}"
            raise ValidationError({
                "min_amount": (
                    f"Amount band overlaps active rule '{other.name_en}' "
                    f"[{other.min_amount} – {upper}] in {scope}."
                )
            })


@transaction.atomic
def add_rule(data: dict, by_user=None) -> ApprovalRule:
    rule = ApprovalRule(**data)
    if by_user is not None and getattr(by_user, "is_authenticated", False):
        rule.created_by = by_user
    _full_clean(rule)
    check_band_overlap(rule)
    rule.save()
    log_audit("AddRule", "approval_rules", rule.pk, new_values=_as_dict(rule), by_user=by_user)
    create_matrix_snapshot(f"Added rule: {rule.name_en}", by_user=by_user)
    return rule


@transaction.atomic
def edit_rule(rule: ApprovalRule, updates: dict, by_user=None) -> ApprovalRule:
    rule = ApprovalRule.objects.select_for_update().get(pk=rule.pk)
    old = _as_dict(rule)
    for field, value in updates.items():
        if field in ("id", "version", "created_by", "created_at"):
            continue
        setattr(rule, field, value)
    rule.version = (rule.version or 0) + 1
    _full_clean(rule)
    check_band_overlap(rule)
    rule.save()
    log_audit("EditRule", "approval_rules", rule.pk, old_values=old, new_values=_as_dict(rule), by_user=by_user)
    create_matrix_snapshot(f"Updated rule: {rule.name_en}", by_user=by_user)
    return rule


@transaction.atomic
def delete_rule(rule: ApprovalRule, by_user=None):
    old = _as_dict(rule)
    rule_id, name = rule.pk, rule.name_en
    rule.delete()  # cascades to RuleApprover rows
    log_audit("DeleteRule", "approval_rules", rule_id, old_values=old, by_user=by_user)
    create_matrix_snapshot(f"Deleted rule: {name}", by_user=by_user)
    return rule_id


@transaction.atomic
def add_rule_approver(rule: ApprovalRule, approval_role: ApprovalRole, sequence_order=None,
                      is_mandatory=True, can_delegate=False, by_user=None) -> RuleApprover:
    if sequence_order is None:
        sequence_order = rule.approvers.count() + 1
    approver = RuleApprover(
        rule=rule,
        approval_role=approval_role,
        sequence_order=sequence_order,
        is_mandatory=is_mandatory,
        can_delegate=can_delegate,
    )
    _full_clean(approver)
    approver.save()
    log_audit("AddRuleApprover", "approval_rule_approvers", approver.pk, new_values=_as_dict(approver), by_user=by_user)
    return approver


@transaction.atomic
def remove_rule_approver(approver: RuleApprover, by_user=None):
    old = _as_dict(approver)
    approver_id = approver.pk
    approver.delete()
    log_audit("RemoveRuleApprover", "approval_rule_approvers", approver_id, old_values=old, by_user=by_user)
    return approver_id


# --------- Overrides & thresholds ---------
def _apply_updates(instance, updates: dict, frozen=("id", "created_by", "created_at")):
    for field, value in updates.items():
        if field in frozen:
            continue
        setattr(instance, field, value)


@transaction.atomic
def add_override(data: dict, by_user=None) -> ApprovalOverride:
    override = ApprovalOverride(**data)
    if getattr(by_user, "is_authenticated", False):
        override.created_by = by_user
    _full_clean(override)
    override.save()
    log_audit("AddOverride", "approval_overrides", override.pk, new_values=_as_dict(override), by_user=by_user)
    create_matrix_snapshot(f"Added override: {override.name_en}", by_user=by_user)
    return override


@transaction.atomic
def edit_override(override: ApprovalOverride, updates: dict, by_user=None) -> ApprovalOverride:
    override = ApprovalOverride.objects.select_for_update().get(pk=override.pk)
    old = _as_dict(override)
    _apply_updates(override, updates)
    _full_clean(override)
    override.save()
    log_audit("EditOverride", "approval_overrides", override.pk,
              old_values=old, new_values=_as_dict(override), by_user=by_user)
    create_matrix_snapshot(f"Updated override: {override.name_en}", by_user=by_user)
    return override


def overrides_in_effect(category: Optional[str] = None, at=None) -> list:
    qs = ApprovalOverride.objects.filter(is_active=True)
    if category:
        qs = qs.filter(Q(category=category) | Q(category__isnull=True))
    return [o for o in qs if o.in_effect(at)]


@transaction.atomic
def add_threshold(data: dict, by_user=None) -> ApprovalThreshold:
    threshold = ApprovalThreshold(**data)
    _full_clean(threshold)
    threshold.save()
    log_audit("AddThreshold", "approval_thresholds", threshold.pk, new_values=_as_dict(threshold), by_user=by_user)
    return threshold


@transaction.atomic
def edit_threshold(threshold: ApprovalThreshold, updates: dict, by_user=None) -> ApprovalThreshold:
    old = _as_dict(threshold)
    _apply_updates(threshold, updates)
    _full_clean(threshold)
    threshold.save()
    log_audit("EditThreshold", "approval_thresholds", threshold.pk,
              old_values=old, new_values=_as_dict(threshold), by_user=by_user)
    return threshold


@transaction.atomic
def delete_threshold(threshold: ApprovalThreshold, by_user=None):
    old = _as_dict(threshold)
    threshold_id = threshold.pk
    threshold.delete()
    log_audit("DeleteThreshold", "approval_thresholds", threshold_id, old_values=old, by_user=by_user)
    return threshold_id


# --------- Rule matching ---------
def _to_amount(amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    try:
        return Decimal(str(amount))
    except ArithmeticError:
        raise ValidationError({"amount": "A valid amount is required."})


def match_rule(category: str, amount, department: Optional[str] = None) -> MatchResult:
    """
    Pick the active rule of `category` whose band contains `amount`
    (min <= amount <= max, max=None unbounded). Never raises for "no rule";
    callers decide what an empty match means.

    With a `department`, a rule scoped to that department wins over a
    department-less one; without it only department-less rules apply.
    """
    amount = _to_amount(amount)
    department = (department or "").strip() or None
    approvers_qs = RuleApprover.objects.select_related("approval_role").order_by("sequence_order")
    qs = (
        ApprovalRule.objects
        .filter(is_active=True, category=category, min_amount__lte=amount)
        .filter(Q(max_amount__isnull=True) | Q(max_amount__gte=amount))
        .prefetch_related(Prefetch("approvers", queryset=approvers_qs))
    )
    if department:
        qs = qs.filter(Q(department=department) | Q(department__isnull=True))
    else:
        qs = qs.filter(department__isnull=True)
    # legacy overlaps: narrowest upper band wins
    rule = qs.order_by(F("department").asc(nulls_last=True), "-min_amount", "id").first()
    if rule is None:
        return MatchResult(None, False, [])

    if rule.auto_approve_below is not None and amount < rule.auto_approve_below:
        return MatchResult(rule, True, [])

    path = sorted(rule.approvers.all(), key=lambda a: a.sequence_order)
    return MatchResult(rule, False, path)


def simulate(category: str, amount, department: Optional[str] = None) -> dict:
    result = match_rule(category, amount, department)
    rule = result.rule
    return {
        "category": category,
        "department": department or None,
        "amount": str(_to_amount(amount)),
        "rule": None if rule is None else {
            "id": rule.id,
            "name_en": rule.name_en,
            "name_ar": rule.name_ar,
            "department": rule.department,
            "min_amount": str(rule.min_amount),
            "max_amount": None if rule.max_amount is None else str(rule.max_amount),
            "auto_approve_below": None if rule.auto_approve_below is None else str(rule.auto_approve_below),
            "version": rule.version,
        },
        "auto_approved": result.auto_approved,
        "approval_path": [
            {
                "sequence_order": a.sequence_order,
                "role_code": a.approval_role.code,
                "role_name_en": a.approval_role.name_en,
                "role_name_ar": a.approval_role.name_ar,
                "is_mandatory": a.is_mandatory,
                "can_delegate": a.can_delegate,
            }
            for a in result.approval_path
        ],
    }


# --------- Workflow instantiation ---------
def _rule_snapshot(rule, path):
    if rule is None:
        return {}
    return {
        "rule": {
            "id": rule.id,
            "name_en": rule.name_en,
            "version": rule.version,
            "department": rule.department,
            "min_amount": str(rule.min_amount),
            "max_amount": None if rule.max_amount is None else str(rule.max_amount),
            "auto_approve_below": None if rule.auto_approve_below is None else str(rule.auto_approve_below),
        },
        "approvers": [
            {"sequence_order": a.sequence_order, "role_id": a.approval_role_id, "role_code": a.approval_role.code}
            for a in path
        ],
    }


def _notify_subject(wf: ApprovalWorkflow, event: str):
    """
    Contract for documents under approval:
      subject.handle_approval_event(workflow=..., event='moved'/'completed'/'rejected'/'auto_approved'/'submitted')
    """
    subject = wf.subject
    handler = getattr(subject, "handle_approval_event", None)
    if callable(handler):
        handler(workflow=wf, event=event)


@transaction.atomic
def instantiate_workflow(subject, rule: Optional[ApprovalRule], *, category: str, amount,
                         auto_approved: bool = False, currency: str = "", reference_code: str = "",
                         by_user=None) -> ApprovalWorkflow:
    """
    One pending WorkflowAction per rule approver (sequence order kept).
    No approvers, or auto-approval, gives a workflow that is already
    `auto_approved` and completed.
    """
    if auto_approved or rule is None:
        path = []
    else:
        path = sorted(rule.approvers.select_related("approval_role"), key=lambda a: a.sequence_order)

    now = timezone.now()
    wf = ApprovalWorkflow.objects.create(
        subject=subject,
        category=category,
        reference_code=reference_code or "",
        amount=_to_amount(amount),
        currency=currency or (rule.currency if rule else "AED"),
        rule=rule,
        status=WorkflowStatus.PENDING if path else WorkflowStatus.AUTO_APPROVED,
        current_level=path[0].sequence_order if path else 1,
        initiated_by=by_user if getattr(by_user, "is_authenticated", False) else None,
        snapshot=_rule_snapshot(rule, path),
        completed_at=None if path else now,
    )
    WorkflowAction.objects.bulk_create([
        WorkflowAction(
            workflow=wf,
            sequence_order=a.sequence_order,
            approval_role=a.approval_role,
            status=ActionStatus.PENDING,
        )
        for a in path
    ])

    log_audit(
        "workflow_initiated", category, subject.pk,
        new_values={"workflow_id": wf.id, "amount": str(wf.amount), "approvers": len(path), "status": wf.status},
        by_user=by_user,
    )
    logger.info("Workflow %s created for %s #%s (%d steps, %s)", wf.id, category, subject.pk, len(path), wf.status)

    if wf.status == WorkflowStatus.AUTO_APPROVED:
        _notify_subject(wf, "auto_approved")
    else:
        _notify_subject(wf, "submitted")
        transaction.on_commit(lambda: notifications.email_current_approvers(wf.pk, reason="submitted"))
    return wf


def initiate_workflow(subject, category: str, amount, *, department: Optional[str] = None, currency: str = "",
                      reference_code: str = "", by_user=None) -> ApprovalWorkflow:
    if category not in ApprovalCategory.values:
        raise ValidationError({"category": f"Unknown approval category '{category}'."})
    result = match_rule(category, amount, department)
    if result.rule is None:
        raise NoApprovalPolicy(f"No active approval rule covers {category} for amount {amount}.")
    return instantiate_workflow(
        subject, result.rule,
        category=category, amount=amount, auto_approved=result.auto_approved,
        currency=currency, reference_code=reference_code, by_user=by_user,
    )


def get_workflow(subject) -> ApprovalWorkflow:
    ct = ContentType.objects.get_for_model(subject)
    wf = ApprovalWorkflow.objects.filter(content_type=ct, object_id=subject.pk).order_by("-created_at", "-id").first()
    if wf is None:
        raise ApprovalWorkflow.DoesNotExist(f"No approval workflow for {ct.model} #{subject.pk}.")
    return wf


# --------- Authorization ---------
def current_action(wf: ApprovalWorkflow) -> Optional[WorkflowAction]:
    if wf.status != WorkflowStatus.PENDING:
        return None
    return (
        wf.actions.select_related("approval_role")
        .filter(sequence_order=wf.current_level, status=ActionStatus.PENDING)
        .first()
    )


class ApproverProfile(NamedTuple):
    overrides: bool
    capabilities: dict  # approver_role code -> [UserApprover]


def approver_profile(user) -> ApproverProfile:
    if getattr(user, "is_superuser", False) or has_app_role(user, *APPROVAL_OVERRIDE_ROLES):
        return ApproverProfile(True, {})
    capabilities = {}
    for cap in UserApprover.objects.filter(user=user, is_active=True):
        capabilities.setdefault(cap.approver_role, []).append(cap)
    return ApproverProfile(False, capabilities)


def can_user_act(user, wf: ApprovalWorkflow, action: Optional[WorkflowAction] = None,
                 profile: Optional[ApproverProfile] = None):
    """
    Returns (allowed, reason). Superusers and admin/manager app roles may act on
    any current step; other users need an active UserApprover for the step's role
    that covers the workflow category and amount.
    Pass a precomputed `profile` when checking many workflows for one user.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return False, "Not authenticated."
    if wf.status != WorkflowStatus.PENDING:
        return False, "Workflow is not pending."
    action = action or current_action(wf)
    if action is None:
        return False, "No pending action at the current level."

    if profile is None:
        profile = approver_profile(user)
    if profile.overrides:
        return True, "ok"

    role = action.approval_role
    if role is None or not role.is_active:
        return False, "The current step has no active approval role."
    if any(c.covers(wf.category, wf.amount) for c in profile.capabilities.get(role.code, [])):
        return True, "ok"
    return False, "You are not an approver for the current step."


# --------- State machine ---------
@transaction.atomic
def record_decision(workflow: ApprovalWorkflow, user, approve: bool, comment: str = "", action_id=None):
    """
    Resolve the current step of `workflow`. Returns (workflow, action, outcome)
    where outcome is 'moved', 'completed' or 'rejected'.
    The workflow row is locked for the whole transition.
    """
    comment = (comment or "").strip()
    if not approve and not comment:
        raise ValidationError({"comments": "A comment is required to reject."})

    wf = ApprovalWorkflow.objects.select_for_update().get(pk=workflow.pk)
    if wf.status != WorkflowStatus.PENDING:
        raise WorkflowStateError(f"Workflow already finished ({wf.status}).")

    actions = list(WorkflowAction.objects.select_for_update().filter(workflow=wf).order_by("sequence_order"))
    chain = ApprovalChain(actions, wf.current_level)

    target = None
    if action_id is not None:
        target = next((a for a in actions if a.pk == int(action_id)), None)
        if target is None:
            raise WorkflowStateError("Action does not belong to this workflow.")
    action = chain.actionable(target)

    allowed, reason = can_user_act(user, wf, action)
    if not allowed:
        raise PermissionError(reason)

    now = timezone.now()
    if approve:
        outcome = chain.approve(user.id, comment, step=action, now=now)
    else:
        outcome = chain.reject(user.id, comment, step=action, now=now)
    action.save(update_fields=["status", "approver", "comments", "acted_at"])

    if outcome == "moved":
        wf.current_level = chain.current_level
        wf.save(update_fields=["current_level", "updated_at"])
        log_audit("workflow_step_approved", wf.category, wf.object_id,
                  new_values={"workflow_id": wf.id, "step": action.sequence_order, "next_level": wf.current_level},
                  by_user=user)
    elif outcome == "completed":
        wf.status = WorkflowStatus.APPROVED
        wf.completed_at = now
        wf.save(update_fields=["status", "completed_at", "updated_at"])
        log_audit("workflow_approved", wf.category, wf.object_id,
                  new_values={"workflow_id": wf.id, "approved_by": user.id}, by_user=user)
    else:
        wf.status = WorkflowStatus.REJECTED
        wf.completed_at = now
        wf.save(update_fields=["status", "completed_at", "updated_at"])
        log_audit("workflow_rejected", wf.category, wf.object_id,
                  new_values={"workflow_id": wf.id, "rejected_by": user.id, "reason": comment}, by_user=user)

    logger.info("Workflow %s step %s %s by user %s -> %s",
                wf.id, action.sequence_order, "approved" if approve else "rejected", user.id, outcome)

    _notify_subject(wf, outcome)
    if outcome == "moved":
        transaction.on_commit(lambda: notifications.email_current_approvers(wf.pk, reason=f"step {action.sequence_order} approved"))
    else:
        transaction.on_commit(lambda: notifications.email_initiator_on_final(wf.pk, comment=comment))
    return wf, action, outcome


def approve_step(workflow: ApprovalWorkflow, user, comment: str = "", action_id=None):
    return record_decision(workflow, user, True, comment, action_id=action_id)


def reject_step(workflow: ApprovalWorkflow, user, comment: str, action_id=None):
    return record_decision(workflow, user, False, comment, action_id=action_id)


def pending_for_user(user, category: Optional[str] = None) -> list:
    """Pending workflows whose current step `user` may act on, oldest first."""
    if not user or not getattr(user, "is_authenticated", False):
        return []
    profile = approver_profile(user)
    qs = (
        ApprovalWorkflow.objects
        .filter(status=WorkflowStatus.PENDING)
        .prefetch_related(Prefetch("actions", queryset=WorkflowAction.objects.select_related("approval_role")))
        .order_by("created_at", "id")
    )
    if category:
        qs = qs.filter(category=category)
    inbox = []
    for wf in qs:
        action = next(
            (a for a in wf.actions.all() if a.sequence_order == wf.current_level and a.status == ActionStatus.PENDING),
            None,
        )
        if action is None:
            continue
        allowed, _ = can_user_act(user, wf, action, profile=profile)
        if allowed:
            inbox.append(wf)
    return inbox
