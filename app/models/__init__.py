# Depot bay allocation: Database Models
# Import all models here for SQLAlchemy discovery

from app.models.floor import Floor                  # noqa
from app.models.checkpoint import Checkpoint        # noqa
from app.models.bus import Bus                      # noqa
from app.models.bay import Bay                      # noqa
from app.models.bus_position import BusPosition     # noqa
from app.models.allocation import Allocation        # noqa
