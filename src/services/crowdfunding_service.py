import logging
from datetime import datetime
from typing import Any, Callable, List, Optional, Union

from pydantic import TypeAdapter

from core.config import Settings, settings as default_settings
from schemas.action_status import StatusSnapshot, TransactionOutcome
from schemas.campaign import Campaign
from schemas.intents import Intent
from services.campaign_store import CampaignStore
from services.intent_channel import IntentChannel
from services.ledger_client import LedgerClient
from services.status_board import StatusBoard
from services.sync_engine import SyncEngine
from services.transaction_coordinator import TransactionCoordinator

logger = logging.getLogger(__name__)

intent_adapter = TypeAdapter(Intent)


class CrowdfundingService:
    """Surface consumed by the rendering layer: campaigns, refresh, submit, status."""

    def __init__(
        self,
        ledger: LedgerClient,
        max_parallel_fetches: int = 8,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.ledger = ledger
        self.store = CampaignStore()
        self.status_board = StatusBoard()
        self.sync_engine = SyncEngine(
            ledger, self.store, self.status_board, max_parallel_fetches
        )
        self.coordinator = TransactionCoordinator(
            ledger, self.store, self.sync_engine, self.status_board, clock
        )
        self.intents = IntentChannel(self.coordinator)

    @classmethod
    def from_settings(cls, settings: Settings = default_settings) -> "CrowdfundingService":
        ledger = LedgerClient(
            settings.ledger_config(),
            confirmation_timeout=settings.CONFIRMATION_TIMEOUT_SECONDS,
            poll_latency=settings.CONFIRMATION_POLL_SECONDS,
        )
        return cls(ledger, max_parallel_fetches=settings.MAX_PARALLEL_FETCHES)

    async def start(self):
        await self.ledger.connect()
        self.intents.start()

    async def stop(self):
        await self.intents.stop()

    def get_campaigns(self) -> List[Campaign]:
        return self.store.get_all()

    def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        return self.store.get(campaign_id)

    async def refresh_all(self, force: bool = False) -> List[Campaign]:
        await self.sync_engine.full_refresh(force=force)
        return self.get_campaigns()

    async def submit(self, intent: Union[Intent, dict]) -> TransactionOutcome:
        if isinstance(intent, dict):
            intent = intent_adapter.validate_python(intent)
        return await self.intents.request(intent)

    def status(self) -> StatusSnapshot:
        return self.status_board.snapshot()

    def subscribe(
        self, callback: Callable[[str, Any], None], key: Union[int, str, None] = None
    ) -> int:
        return self.status_board.subscribe(callback, key)

    def unsubscribe(self, subscription_id: int) -> bool:
        return self.status_board.unsubscribe(subscription_id)

    def reset(self):
        """Forget every record, e.g. after switching contract or provider."""
        logger.info("Clearing campaign store")
        self.sync_engine.invalidate()
        self.store.clear()
        self.status_board.clear()
