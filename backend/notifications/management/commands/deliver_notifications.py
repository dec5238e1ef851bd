from django.core.management.base import BaseCommand
from django.utils import timezone

from notifications.models import NotificationEvent
from notifications.services import deliver_due_events


class Command(BaseCommand):
    help = "Retry Discord notifications that are due."

    def handle(self, *args, **options):
        events = deliver_due_events(now=timezone.now())

        delivered = sum(1 for e in events if e.status == NotificationEvent.Status.DELIVERED)
        failed = sum(1 for e in events if e.status == NotificationEvent.Status.FAILED)
        cancelled = sum(1 for e in events if e.status == NotificationEvent.Status.CANCELLED)
        retrying = len(events) - delivered - failed - cancelled

        self.stdout.write(
            self.style.SUCCESS(
                "Notification delivery complete: "
                f"attempted={len(events)}, "
                f"delivered={delivered}, "
                f"retrying={retrying}, "
                f"failed={failed}, "
                f"cancelled={cancelled}"
            )
        )
