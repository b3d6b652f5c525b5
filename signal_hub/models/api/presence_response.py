# signal_hub/models/api/presence_response.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class PresenceResponse(BaseModel):
    """Response for GET /presence/{user_id}"""

    user_id: str
    status: Literal["online", "away", "offline"]
    last_seen: datetime | None = None
    source: Literal["live", "store"] = Field(
        ..., description="live: tracked by this process, store: last persisted value"
    )


class OnlineUsersResponse(BaseModel):
    """Response for GET /presence"""

    online: list[str]
    count: int
