from django.core.management.base import BaseCommand

from marketplace.services.expirations import process_expirations


class Command(BaseCommand):
    help = "Expire lapsed emergency dispatch offers and quote windows."

    def handle(self, *args, **options):
        entries, windows = process_expirations()

        self.stdout.write(
            self.style.SUCCESS(
                f"Expired {entries} dispatch offer(s) and {windows} quote window(s)."
            )
        )
