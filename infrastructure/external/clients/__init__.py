from .exceptions import ExternalServiceError, ExternalServiceUnavailable
from .inventory_client import InventoryClient
from .notification_client import NotificationClient

__all__ = ["ExternalServiceError", "ExternalServiceUnavailable", "InventoryClient", "NotificationClient"]
