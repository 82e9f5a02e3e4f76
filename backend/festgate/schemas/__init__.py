from festgate.schemas.user import UserResponse
from festgate.schemas.item import ItemCreate, ItemUpdate, ItemResponse, ItemListResponse
from festgate.schemas.ticket import TicketCreate, TicketResponse, TicketCancelResponse
from festgate.schemas.registration import RegistrationResponse, DenyRequest, DecisionResponse
from festgate.schemas.scan import ScanRequest, ScanResponse

__all__ = [
    "UserResponse",
    "ItemCreate", "ItemUpdate", "ItemResponse", "ItemListResponse",
    "TicketCreate", "TicketResponse", "TicketCancelResponse",
    "RegistrationResponse", "DenyRequest", "DecisionResponse",
    "ScanRequest", "ScanResponse",
]
