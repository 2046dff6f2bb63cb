"""Payment event domain exports."""
from .entity import PaymentEvent, PaymentEventOutcome
from .repository import PaymentEventRepository

__all__ = ["PaymentEvent", "PaymentEventOutcome", "PaymentEventRepository"]
