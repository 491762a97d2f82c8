from hospient.models.base import Base
from hospient.models.entities import Guest, MenuItem, Room
from hospient.models.integration import Integration, IntegrationLog

__all__ = ["Base", "Guest", "Integration", "IntegrationLog", "MenuItem", "Room"]
