from fleetdesk.db.database import Base

# Import all models so Alembic can discover them
from .company import Company
from .profile import Profile, UserRole
from .mixins import AssociationStatus
from .dispatcher_association import DispatcherAssociation
from .driver_association import DriverAssociation
