from decimal import Decimal, InvalidOperation

from django.core.management.base import BaseCommand, CommandError

from approvals.models import ApprovalCategory
from approvals.services import simulate


class Command(BaseCommand):
    help = "Show which approval rule and approval path apply to a category and amount."

    def add_arguments(self, parser):
        parser.add_argument("--category", required=True, choices=ApprovalCategory.values)
        parser.add_argument("--amount", required=True, type=str, help="Document amount, e.g. 12500.00")
        parser.add_argument("--department", default=None, help="Prefer rules scoped to this department")

    def handle(self, *args, **opts):
        try:
            amount = Decimal(opts["amount"])
        except InvalidOperation:
            raise CommandError(f"Invalid amount: {opts['amount']}")
        if amount < 0:
            raise CommandError("Amount cannot be negative.")

        result = simulate(opts["category"], amount, opts["department"])
        rule = result["rule"]
        if rule is None:
            self.stdout.write(self.style.WARNING(f"No active rule covers {opts['category']} at {amount}."))
            return

        upper = rule["max_amount"] if rule["max_amount"] is not None else "∞"
        self.stdout.write(f"Rule #{rule['id']} {rule['name_en']} (v{rule['version']}) [{rule['min_amount']} – {upper}]")
        if rule["department"]:
            self.stdout.write(f"  department: {rule['department']}")
        if result["auto_approved"]:
            self.stdout.write(self.style.SUCCESS(f"Auto-approved (below {rule['auto_approve_below']})."))
            return
        if not result["approval_path"]:
            self.stdout.write(self.style.SUCCESS("No approvers configured; the document is approved immediately."))
            return
        for step in result["approval_path"]:
            flag = "" if step["is_mandatory"] else " (optional)"
            self.stdout.write(f"  {step['sequence_order']}. {step['role_code']} · {step['role_name_en']}{flag}")
