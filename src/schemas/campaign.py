from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DECIMAL_PATTERN = r"^[0-9]+$"


class Campaign(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1)
    creator: str
    # Amounts are decimal strings, never floats
    goal: str = Field(pattern=DECIMAL_PATTERN)
    deadline: int
    amount_raised: str = Field(pattern=DECIMAL_PATTERN)
    claimed: bool

    @property
    def deadline_at(self) -> datetime:
        return datetime.fromtimestamp(self.deadline, tz=timezone.utc)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now.timestamp() > self.deadline
