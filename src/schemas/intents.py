import enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from core.constants import CREATE_KEY, UINT64_MAX


class IntentKind(str, enum.Enum):
    create = "create"
    contribute = "contribute"
    claim_funds = "claim_funds"
    claim_refund = "claim_refund"


class CreateCampaignIntent(BaseModel):
    kind: Literal["create"] = "create"
    goal: str
    deadline: int = Field(ge=0, le=UINT64_MAX)

    @property
    def key(self) -> str:
        return CREATE_KEY


class CampaignIntent(BaseModel):
    campaign_id: int = Field(ge=1, le=UINT64_MAX)

    @property
    def key(self) -> int:
        return self.campaign_id


class ContributeIntent(CampaignIntent):
    kind: Literal["contribute"] = "contribute"
    amount: str


class ClaimFundsIntent(CampaignIntent):
    kind: Literal["claim_funds"] = "claim_funds"


class ClaimRefundIntent(CampaignIntent):
    kind: Literal["claim_refund"] = "claim_refund"


Intent = Annotated[
    Union[CreateCampaignIntent, ContributeIntent, ClaimFundsIntent, ClaimRefundIntent],
    Field(discriminator="kind"),
]


class ContributeRequest(BaseModel):
    amount: str
