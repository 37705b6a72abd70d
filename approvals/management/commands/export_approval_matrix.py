import json

from django.core.management.base import BaseCommand
from django.core.serializers.json import DjangoJSONEncoder

from approvals.services import export_matrix


class Command(BaseCommand):
    help = "Print the approval matrix (rules, roles, rule approvers, overrides) as JSON."

    def add_arguments(self, parser):
        parser.add_argument("--indent", type=int, default=2)

    def handle(self, *args, **opts):
        self.stdout.write(json.dumps(export_matrix(), cls=DjangoJSONEncoder, indent=opts["indent"], ensure_ascii=False))
