from django.core.management.base import BaseCommand

from pharmerp.core.preferences import seed_default_preferences


class Command(BaseCommand):
    help = 'Install the default system preferences (company, financial, inventory, notifications)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--overwrite',
            action='store_true',
            help='Reset existing preferences to their default values',
        )

    def handle(self, *args, **options):
        created, updated = seed_default_preferences(overwrite=options['overwrite'])
        self.stdout.write(self.style.SUCCESS(
            f'Preferences seeded: {created} created, {updated} reset'
        ))
