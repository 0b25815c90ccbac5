from django.core.management.base import BaseCommand

from pharmerp.sales.services import expire_quotations


class Command(BaseCommand):
    help = 'Mark quotations whose validity date has passed as expired'

    def handle(self, *args, **options):
        count = expire_quotations()
        self.stdout.write(self.style.SUCCESS(f'{count} quotations expired'))
