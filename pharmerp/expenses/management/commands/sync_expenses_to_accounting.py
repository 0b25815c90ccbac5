from django.core.management.base import BaseCommand

from pharmerp.core.cache_utils import invalidate_financial_caches
from pharmerp.expenses.services import sync_approved_expenses


class Command(BaseCommand):
    help = 'Post journal entries for approved expenses that do not have one'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be posted without writing anything',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        results = sync_approved_expenses(dry_run=dry_run)
        if not results:
            self.stdout.write(self.style.SUCCESS('Every approved expense already has a journal entry'))
            return

        failed = 0
        for expense, entry, message in results:
            if message.startswith('failed'):
                failed += 1
                self.stdout.write(self.style.ERROR(f'  #{expense.id} {expense.description}: {message}'))
            else:
                self.stdout.write(f'  #{expense.id} {expense.description} ({expense.amount}): {message}')

        if dry_run:
            self.stdout.write(self.style.WARNING(f'DRY RUN: {len(results)} expenses would be synced'))
            return
        invalidate_financial_caches()
        self.stdout.write(self.style.SUCCESS(f'Synced {len(results) - failed} expenses, {failed} failed'))
