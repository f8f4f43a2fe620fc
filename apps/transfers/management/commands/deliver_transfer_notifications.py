"""
Management command to retry pending transfer notifications.

Notifications are normally delivered right after the transition commits;
this command picks up the ones whose delivery failed and is due for
another attempt, and queues any that were never written to the outbox.
Intended to run from cron.

Usage:
    python manage.py deliver_transfer_notifications
    python manage.py deliver_transfer_notifications --limit 500 --dry-run
"""

from django.core.management.base import BaseCommand
from django.utils import timezone
from apps.transfers.models import NotificationStatus, TransferAuditEntry, TransferNotification
from apps.transfers.services import deliver_pending_notifications


class Command(BaseCommand):
    help = 'Deliver pending branch transfer notifications that are due'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=100,
            help='Maximum number of notifications to attempt',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show how many notifications are due without sending them',
        )

    def handle(self, *args, **options):
        limit = options['limit']

        due = TransferNotification.objects.filter(
            status=NotificationStatus.PENDING,
            next_attempt_at__lte=timezone.now(),
        ).count()
        due += TransferAuditEntry.objects.filter(notification__isnull=True).count()

        if due == 0:
            self.stdout.write(self.style.SUCCESS('No notifications due.'))
            return

        self.stdout.write(f'Found {due} notification(s) due (limit {limit}).')

        if options['dry_run']:
            self.stdout.write(self.style.WARNING('--dry-run mode: nothing sent.'))
            return

        counts = deliver_pending_notifications(limit=limit)

        self.stdout.write(self.style.SUCCESS(f"Sent {counts['sent']} notification(s)."))
        if counts['pending']:
            self.stdout.write(self.style.WARNING(f"{counts['pending']} will be retried later."))
        if counts['failed']:
            self.stdout.write(self.style.ERROR(f"{counts['failed']} gave up after max attempts."))
