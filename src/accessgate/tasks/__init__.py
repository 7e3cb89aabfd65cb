"""Background task processing."""

from accessgate.tasks.maintenance import purge_expired_entitlements
from accessgate.tasks.queue import get_queue_settings, queue

__all__ = ["get_queue_settings", "purge_expired_entitlements", "queue"]
