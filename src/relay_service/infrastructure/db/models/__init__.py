"""Import all models so metadata.create_all can discover them via Base.metadata."""
from relay_service.infrastructure.db.models.client_state import ClientStateModel

__all__ = [
    "ClientStateModel",
]
