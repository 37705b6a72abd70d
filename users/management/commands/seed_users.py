from django.contrib.auth.models import User
from django.core.management.base import BaseCommand

from users.models import AppRole, UserProfile, UserRole

# username, full name, app role, line manager username
TEAM = [
    ("procurement.admin", "Procurement Admin", AppRole.ADMIN, None),
    ("procurement.manager", "Procurement Manager", AppRole.MANAGER, None),
    ("buyer.one", "Buyer One", AppRole.BUYER, "procurement.manager"),
    ("buyer.two", "Buyer Two", AppRole.BUYER, "procurement.manager"),
    ("finance.approver", "Finance Approver", AppRole.APPROVER, "procurement.manager"),
]


class Command(BaseCommand):
    help = "Seed the procurement team without passwords"

    def add_arguments(self, parser):
        parser.add_argument("--department", default="Procurement")

    def handle(self, *args, **opts):
        users = {}
        for username, full_name, role, _ in TEAM:
            user, created = User.objects.get_or_create(username=username)
            if created:
                user.set_unusable_password()
                user.save()
                self.stdout.write(self.style.SUCCESS(f"✅ Created: {username}"))
            else:
                self.stdout.write(self.style.WARNING(f"⏭ Already exists: {username}"))

            UserRole.objects.get_or_create(user=user, role=role)
            UserProfile.objects.update_or_create(
                user=user, defaults={"full_name": full_name, "department": opts["department"]}
            )
            users[username] = user

        # second pass, managers exist now
        for username, _, _, manager in TEAM:
            if manager:
                UserProfile.objects.filter(user=users[username]).update(line_manager=users[manager])
