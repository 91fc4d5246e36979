# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.

from patroltrack.models.user import User  # noqa: F401  (doit précéder route_assignment)
from patroltrack.models.checkpoint import Checkpoint  # noqa: F401
from patroltrack.models.route import Route  # noqa: F401
from patroltrack.models.route_assignment import RouteAssignment  # noqa: F401
from patroltrack.models.checkpoint_scan import CheckpointScan  # noqa: F401
