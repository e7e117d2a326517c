import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Union

from core.exceptions import (
    AlreadyInFlight,
    CrowdfundError,
    PreconditionNotMet,
    Rejected,
)
from schemas.action_status import IN_FLIGHT_PHASES, ActionPhase, TransactionOutcome
from schemas.campaign import Campaign
from schemas.intents import (
    ClaimFundsIntent,
    ClaimRefundIntent,
    ContributeIntent,
    CreateCampaignIntent,
    Intent,
)
from schemas.ledger import TransactionHandle, Uint256
from services.campaign_store import CampaignStore
from services.ledger_client import LedgerClient
from services.status_board import StatusBoard
from services.sync_engine import SyncEngine
from utils import amount_codec

logger = logging.getLogger(__name__)


class TransactionCoordinator:
    """Runs each mutating intent through
    submit -> await confirmation -> targeted refresh.

    ``_phases`` is the per-key state machine table (campaign id, or the
    shared create key). A key absent from the table is idle. At most one
    action per key is in flight; a second one fails with AlreadyInFlight
    instead of queuing.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        store: CampaignStore,
        sync_engine: SyncEngine,
        status_board: Optional[StatusBoard] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.ledger = ledger
        self.store = store
        self.sync_engine = sync_engine
        self.status_board = status_board or sync_engine.status_board
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._phases: Dict[Union[int, str], ActionPhase] = {}

    def phase(self, key: Union[int, str]) -> ActionPhase:
        return self._phases.get(key, ActionPhase.idle)

    def _set_phase(self, intent: Intent, phase: ActionPhase, tx_hash: Optional[str] = None):
        self._phases[intent.key] = phase
        self.status_board.set_action(intent.key, intent.kind, phase, tx_hash=tx_hash)
        logger.info("%s %s -> %s", intent.kind, intent.key, phase.value)

    def _require_campaign(self, intent: Intent) -> Campaign:
        campaign = self.store.get(intent.campaign_id)
        if campaign is None:
            raise PreconditionNotMet(
                f"campaign {intent.campaign_id} is not known locally",
                intent.kind,
                intent.campaign_id,
            )
        if campaign.claimed:
            raise PreconditionNotMet(
                f"campaign {intent.campaign_id} is already claimed",
                intent.kind,
                intent.campaign_id,
            )
        return campaign

    def _prepare(self, intent: Intent) -> Optional[Uint256]:
        """Check local preconditions and encode amounts. Never touches the ledger."""
        if isinstance(intent, CreateCampaignIntent):
            return amount_codec.encode(intent.goal)

        campaign = self._require_campaign(intent)

        if isinstance(intent, ContributeIntent):
            return amount_codec.encode(intent.amount)

        if isinstance(intent, ClaimFundsIntent):
            if campaign.creator.lower() != self.ledger.account_address.lower():
                raise PreconditionNotMet(
                    f"only the creator {campaign.creator} can claim funds",
                    intent.kind,
                    intent.campaign_id,
                )
            return None

        if isinstance(intent, ClaimRefundIntent):
            now = self.clock()
            if not now.timestamp() > campaign.deadline:
                raise PreconditionNotMet(
                    f"campaign {intent.campaign_id} deadline {campaign.deadline} has not passed",
                    intent.kind,
                    intent.campaign_id,
                )
            return None

        raise ValueError(f"Unsupported intent {intent!r}")

    async def _send(self, intent: Intent, amount: Optional[Uint256]) -> TransactionHandle:
        if isinstance(intent, CreateCampaignIntent):
            return await self.ledger.create_campaign(amount, intent.deadline)
        if isinstance(intent, ContributeIntent):
            return await self.ledger.contribute(intent.campaign_id, amount)
        if isinstance(intent, ClaimFundsIntent):
            return await self.ledger.claim_funds(intent.campaign_id)
        return await self.ledger.claim_refund(intent.campaign_id)

    async def _refresh(self, intent: Intent) -> List[int]:
        if isinstance(intent, CreateCampaignIntent):
            new_ids = await self.sync_engine.refresh_new_campaigns()
            if not new_ids:
                logger.warning("Create confirmed but campaign count did not grow")
            return new_ids
        await self.sync_engine.targeted_refresh(intent.campaign_id)
        return [intent.campaign_id]

    def _outcome(self, intent: Intent, **kwargs) -> TransactionOutcome:
        return TransactionOutcome(
            kind=intent.kind,
            campaign_id=getattr(intent, "campaign_id", None),
            **kwargs,
        )

    def _fail(
        self, intent: Intent, error: CrowdfundError, tx_hash: Optional[str] = None
    ) -> TransactionOutcome:
        logger.error("%s %s failed: %s", intent.kind, intent.key, error.to_dict())
        self.status_board.set_action(
            intent.key, intent.kind, ActionPhase.failed, tx_hash=tx_hash, error=error.to_dict()
        )
        return self._outcome(
            intent,
            succeeded=False,
            phase=ActionPhase.failed,
            tx_hash=tx_hash,
            error=error.to_dict(),
        )

    async def submit(self, intent: Intent) -> TransactionOutcome:
        key = intent.key
        if self.phase(key) in IN_FLIGHT_PHASES:
            error = AlreadyInFlight(
                f"{self.phase(key).value} action already in flight for {key}",
                intent.kind,
                getattr(intent, "campaign_id", None),
            )
            logger.warning("Refusing %s for %s: %s", intent.kind, key, error.message)
            # the running action owns the status entry
            return self._outcome(
                intent, succeeded=False, phase=ActionPhase.failed, error=error.to_dict()
            )

        try:
            amount = self._prepare(intent)
        except CrowdfundError as e:
            return self._fail(intent, e)

        # no suspension point between the in-flight check and this claim
        self._set_phase(intent, ActionPhase.submitting)
        if isinstance(key, int):
            self.store.mark_pending(key)

        tx_hash = None
        try:
            handle = await self._send(intent, amount)
            tx_hash = handle.tx_hash
            self._set_phase(intent, ActionPhase.awaiting_confirmation, tx_hash)

            result = await self.ledger.wait_for_confirmation(handle)
            if not result.is_included:
                raise Rejected(result.reason or "rejected", handle.operation, handle.campaign_id)

            self._set_phase(intent, ActionPhase.refreshing, tx_hash)
            refreshed_ids = await self._refresh(intent)
        except CrowdfundError as e:
            return self._fail(intent, e, tx_hash)
        except Exception as e:
            self._fail(intent, CrowdfundError(repr(e), intent.kind), tx_hash)
            raise
        finally:
            self._phases.pop(key, None)
            if isinstance(key, int):
                self.store.mark_fresh(key)

        self.status_board.set_action(key, intent.kind, ActionPhase.idle, tx_hash=tx_hash)
        logger.info("%s %s confirmed in %s", intent.kind, key, tx_hash)
        return self._outcome(
            intent,
            succeeded=True,
            phase=ActionPhase.idle,
            tx_hash=tx_hash,
            refreshed_ids=refreshed_ids,
        )
