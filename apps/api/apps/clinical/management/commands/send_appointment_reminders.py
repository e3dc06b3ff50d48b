"""
Run one appointment reminder scan.

Usage:
    python manage.py send_appointment_reminders

Intended for cron on deployments without a Celery beat process.
"""
from django.core.management.base import BaseCommand

from apps.clinical.reminders import scan_appointment_reminders


class Command(BaseCommand):
    help = 'Send 24h reminders for confirmed appointments that have not had one'

    def handle(self, *args, **options):
        summary = scan_appointment_reminders()
        self.stdout.write(
            self.style.SUCCESS(
                f"Reminder scan: {summary['sent']} sent, "
                f"{summary['already_claimed']} already claimed, "
                f"{summary['errors']} errors ({summary['scanned']} scanned)"
            )
        )
