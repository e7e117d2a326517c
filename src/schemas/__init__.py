from .ledger import *
from .campaign import Campaign
from .intents import (
    Intent,
    IntentKind,
    CreateCampaignIntent,
    ContributeIntent,
    ClaimFundsIntent,
    ClaimRefundIntent,
    ContributeRequest,
)
from .action_status import *
