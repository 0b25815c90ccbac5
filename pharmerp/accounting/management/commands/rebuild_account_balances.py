from django.core.management.base import BaseCommand

from pharmerp.accounting.posting import rebuild_account_balances
from pharmerp.core.cache_utils import invalidate_financial_caches


class Command(BaseCommand):
    help = 'Recompute every account balance from posted journal lines'

    def handle(self, *args, **options):
        changed = rebuild_account_balances()
        for account, old, new in changed:
            self.stdout.write(f'  {account.code} {account.name}: {old} -> {new}')
        invalidate_financial_caches()
        if changed:
            self.stdout.write(self.style.WARNING(f'{len(changed)} account balances corrected'))
        else:
            self.stdout.write(self.style.SUCCESS('All account balances are consistent'))
