import enum
from typing import Optional

from pydantic import BaseModel, Field

from core.constants import UINT128_MAX


class Uint256(BaseModel):
    """256-bit unsigned amount as the contract sees it: two 128-bit words."""

    low: int = Field(ge=0, le=UINT128_MAX)
    high: int = Field(ge=0, le=UINT128_MAX)

    def as_tuple(self) -> tuple[int, int]:
        return (self.low, self.high)


class RawCampaign(BaseModel):
    creator: str
    goal: Uint256
    deadline: int
    amount_raised: Uint256
    claimed: bool


class TransactionHandle(BaseModel):
    tx_hash: str
    operation: str
    campaign_id: Optional[int] = None


class ConfirmationStatus(str, enum.Enum):
    included = "included"
    rejected = "rejected"


class ConfirmationResult(BaseModel):
    status: ConfirmationStatus
    block_number: Optional[int] = None
    reason: Optional[str] = None

    @property
    def is_included(self) -> bool:
        return self.status == ConfirmationStatus.included
