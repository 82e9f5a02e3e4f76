from festgate.models.user import User
from festgate.models.item import Item
from festgate.models.ticket import Ticket
from festgate.models.registration import Registration
from festgate.models.payment_proof import PaymentProof

__all__ = ["User", "Item", "Ticket", "Registration", "PaymentProof"]
