from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password

from records.models import Role, User


def _username(role: Role) -> str:
    return role.value.lower().replace(' ', '_') + '1'


class Command(BaseCommand):
    help = "Ensure one test user per role exists with the given password (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument('--password', default='123456')

    def handle(self, *args, **opts):
        password = make_password(opts['password'])
        for role in Role:
            username = _username(role)
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role.value, "password": password, "is_active": True},
            )
            if not created:
                # reset password, role and active flag
                u.password = password
                u.role = role.value
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role.value})"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
