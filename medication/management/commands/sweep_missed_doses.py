from django.core.management.base import BaseCommand
from django.utils.dateparse import parse_datetime

from medication.services.lifecycle import sweep_overdue


class Command(BaseCommand):
    help = 'Mark pending doses more than two hours overdue as missed'

    def add_arguments(self, parser):
        parser.add_argument(
            '--now',
            help='Evaluate as of this ISO-8601 timestamp (with offset) instead of the current time',
        )

    def handle(self, *args, **options):
        now = None
        if options.get('now'):
            now = parse_datetime(options['now'])
            if now is None or now.tzinfo is None:
                self.stdout.write(self.style.ERROR(f"Invalid timestamp: {options['now']}"))
                return

        updated = sweep_overdue(now=now)
        self.stdout.write(self.style.SUCCESS(f'Marked {updated} doses as missed'))
