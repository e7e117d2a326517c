import enum
from datetime import datetime, timezone
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from schemas.intents import IntentKind


class ActionPhase(str, enum.Enum):
    idle = "idle"
    submitting = "submitting"
    awaiting_confirmation = "awaiting_confirmation"
    refreshing = "refreshing"
    failed = "failed"


IN_FLIGHT_PHASES = (
    ActionPhase.submitting,
    ActionPhase.awaiting_confirmation,
    ActionPhase.refreshing,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ActionStatus(BaseModel):
    key: Union[int, str]
    kind: IntentKind
    phase: ActionPhase
    tx_hash: Optional[str] = None
    error: Optional[dict] = None
    updated_at: datetime = Field(default_factory=utc_now)


class RefreshStatus(BaseModel):
    loading: bool = False
    error: Optional[dict] = None
    last_success_at: Optional[datetime] = None


class TransactionOutcome(BaseModel):
    kind: IntentKind
    campaign_id: Optional[int] = None
    succeeded: bool
    phase: ActionPhase
    tx_hash: Optional[str] = None
    # Ids whose records were re-read from the ledger after confirmation
    refreshed_ids: List[int] = []
    error: Optional[dict] = None


class StatusSnapshot(BaseModel):
    refresh: RefreshStatus
    actions: List[ActionStatus] = []
