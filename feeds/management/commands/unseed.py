from django.core.management.base import BaseCommand
from django.db import transaction

from feeds.models import User


class Command(BaseCommand):
    """
    Management command to remove (unseed) sample data from the database.

    Deletes every non-staff user. Posts, hashtags, follows, engagement rows
    and feed definitions go with them through cascading foreign keys, so
    administrative accounts and their data survive.
    """

    help = 'Removes seeded sample data'

    def handle(self, *args, **options):
        non_staff_users = User.objects.filter(is_staff=False)

        with transaction.atomic():
            deleted_count, _ = non_staff_users.delete()

        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted_count} rows belonging to non-staff users."))
