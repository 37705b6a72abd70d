"""
Bilingual display labels for the approval enums.

The enums in `approvals.models` stay presentation-free; screens and emails
look up their text here.
"""
from .models import ActionStatus, ApprovalCategory, OverrideType, WorkflowStatus

CATEGORY_LABELS = {
    ApprovalCategory.PURCHASE_REQUEST: {"en": "Purchase Request", "ar": "طلب شراء"},
    ApprovalCategory.PURCHASE_ORDER: {"en": "Purchase Order", "ar": "أمر شراء"},
    ApprovalCategory.CONTRACTS: {"en": "Contracts", "ar": "العقود"},
    ApprovalCategory.CAPEX: {"en": "CAPEX", "ar": "رأسمالي"},
    ApprovalCategory.PAYMENTS: {"en": "Payments", "ar": "المدفوعات"},
    ApprovalCategory.FLOAT_CASH: {"en": "Float Cash", "ar": "النثرية"},
}

WORKFLOW_STATUS_LABELS = {
    WorkflowStatus.PENDING: {"en": "Pending", "ar": "قيد الانتظار"},
    WorkflowStatus.APPROVED: {"en": "Approved", "ar": "معتمد"},
    WorkflowStatus.REJECTED: {"en": "Rejected", "ar": "مرفوض"},
    WorkflowStatus.ESCALATED: {"en": "Escalated", "ar": "مصعّد"},
    WorkflowStatus.AUTO_APPROVED: {"en": "Auto Approved", "ar": "معتمد تلقائياً"},
}

ACTION_STATUS_LABELS = {
    ActionStatus.PENDING: {"en": "Pending", "ar": "قيد الانتظار"},
    ActionStatus.APPROVED: {"en": "Approved", "ar": "معتمد"},
    ActionStatus.REJECTED: {"en": "Rejected", "ar": "مرفوض"},
}

OVERRIDE_TYPE_LABELS = {
    OverrideType.EMERGENCY_PURCHASE: {"en": "Emergency Purchase", "ar": "شراء طارئ"},
    OverrideType.SINGLE_SOURCE_JUSTIFICATION: {"en": "Single Source Justification", "ar": "مبرر المورد الوحيد"},
    OverrideType.CAPEX_SPECIAL: {"en": "CAPEX Special", "ar": "رأسمالي خاص"},
    OverrideType.FLOAT_CASH_REPLENISHMENT: {"en": "Float Cash Replenishment", "ar": "تعويض النثرية"},
    OverrideType.BUDGET_OVERRIDE: {"en": "Budget Override", "ar": "تجاوز الميزانية"},
}

_TABLES = {
    ApprovalCategory: CATEGORY_LABELS,
    WorkflowStatus: WORKFLOW_STATUS_LABELS,
    ActionStatus: ACTION_STATUS_LABELS,
    OverrideType: OVERRIDE_TYPE_LABELS,
}


def label_for(enum_cls, value, lang: str = "en") -> str:
    """
    label_for(ApprovalCategory, "capex", "ar") -> "رأسمالي"
    Unknown languages fall back to English, unknown values to the raw value.
    """
    table = _TABLES.get(enum_cls, {})
    try:
        member = enum_cls(value)
    except ValueError:
        return str(value)
    labels = table.get(member)
    if not labels:
        return member.label
    return labels.get(lang) or labels["en"]
