from datetime import datetime
from pydantic import BaseModel
from typing import Optional


class ReminderResponse(BaseModel):
    id: int
    appointment_id: int
    kind: str
    status: str
    fire_at: datetime
    attempt_count: int
    destination: str
    sent_at: Optional[datetime] = None
    last_error: Optional[str] = None
