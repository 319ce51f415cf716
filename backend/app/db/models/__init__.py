"""
Models package — re-exports Base and all models.

Import models here so Alembic's `target_metadata = Base.metadata`
picks up every table automatically.

When adding a new model:
    1. Create `app/db/models/<table_name>.py`
    2. Import it here
"""

from app.db.models.base import Base
from app.db.models.user import User
from app.db.models.policy import Policy
from app.db.models.premium import Premium
from app.db.models.claim import Claim

__all__ = [
    "Base",
    "User",
    "Policy",
    "Premium",
    "Claim",
]
