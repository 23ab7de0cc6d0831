"""Activity Log — append-only audit trail of lifecycle mutations."""

from datetime import datetime

from pydantic import BaseModel


class ActivityLog(BaseModel):
    id: str
    user_id: str        # Actor who triggered it ("SYSTEM" for seeding)
    action: str         # e.g., "CREATE_PICKUP", "UPDATE_STATUS"
    details: str
    timestamp: datetime
