"""
Management command to close approval workflows whose level timed out

Run from cron, e.g. hourly:
    python manage.py process_workflow_timeouts
"""

from django.core.management.base import BaseCommand

from cooperative.services.config import get_business_config
from cooperative.services.workflow import WorkflowRouter


class Command(BaseCommand):
    help = 'Close pending approval workflows whose current level has timed out'

    def handle(self, *args, **options):
        closed = WorkflowRouter(get_business_config()).process_timeouts()
        if closed:
            self.stdout.write(self.style.WARNING(f'{closed} workflow(s) timed out'))
        else:
            self.stdout.write(self.style.SUCCESS('No workflows timed out'))
