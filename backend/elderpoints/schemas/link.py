from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime

class LinkCreate(BaseModel):
    participant_id: UUID
    is_primary: bool = True

class LinkPublic(BaseModel):
    caregiver_id: UUID
    participant_id: UUID
    is_primary: bool
    created_at: datetime
