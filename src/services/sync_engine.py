import asyncio
import logging
from typing import Iterable, List, Optional

from core import constants
from core.exceptions import CrowdfundError, MalformedRecord, SyncFailed
from schemas.campaign import Campaign
from schemas.ledger import RawCampaign
from services.campaign_store import CampaignStore
from services.ledger_client import LedgerClient
from services.status_board import StatusBoard
from utils import amount_codec

logger = logging.getLogger(__name__)


def to_campaign(campaign_id: int, raw: RawCampaign) -> Campaign:
    try:
        return Campaign(
            id=campaign_id,
            creator=raw.creator,
            goal=amount_codec.decode(raw.goal),
            deadline=raw.deadline,
            amount_raised=amount_codec.decode(raw.amount_raised),
            claimed=raw.claimed,
        )
    except (CrowdfundError, ValueError) as e:
        raise MalformedRecord(str(e), "get_campaign", campaign_id) from e


class SyncEngine:
    """Reconciles CampaignStore with the contract.

    Every read takes a ticket from one counter when it starts. The store keeps
    the ticket that wrote each record, and a full refresh commits only if it
    is still the newest full refresh, so results apply in request order.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        store: CampaignStore,
        status_board: Optional[StatusBoard] = None,
        max_parallel_fetches: int = 8,
    ):
        self.ledger = ledger
        self.store = store
        self.status_board = status_board or StatusBoard()
        self.max_parallel_fetches = max(1, max_parallel_fetches)
        self._ticket = 0
        self._latest_full_refresh = 0
        # reads started at or before this ticket predate the last reset
        self._floor = 0

    def _next_ticket(self) -> int:
        self._ticket += 1
        return self._ticket

    def invalidate(self):
        """Drop the results of every read still in flight."""
        self._floor = self._next_ticket()
        self._latest_full_refresh = self._floor

    def _is_stale(self, ticket: int) -> bool:
        return ticket <= self._floor

    async def _fetch(self, campaign_id: int) -> Campaign:
        raw = await self.ledger.get_campaign(campaign_id)
        return to_campaign(campaign_id, raw)

    async def _fetch_all(self, campaign_ids: Iterable[int]) -> List[Campaign]:
        semaphore = asyncio.Semaphore(self.max_parallel_fetches)

        async def fetch(campaign_id: int):
            async with semaphore:
                return await self._fetch(campaign_id)

        results = await asyncio.gather(
            *(fetch(i) for i in campaign_ids), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return results

    async def full_refresh(self, force: bool = False) -> bool:
        """Re-derive the campaign set from the ledger.

        Fetches every id in [1, count] when the count grew since the last
        commit (or when ``force`` is set) and commits them all at once.
        Returns False when a newer full refresh started meanwhile and this
        result was discarded.
        """
        ticket = self._next_ticket()
        self._latest_full_refresh = ticket
        self.status_board.refresh_started()
        logger.info("Full refresh %s started (known count %s)", ticket, self.store.count)

        try:
            count = await self.ledger.get_campaign_count()
            if count > self.store.count or force:
                campaigns = await self._fetch_all(
                    range(constants.FIRST_CAMPAIGN_ID, count + 1)
                )
            else:
                campaigns = []
        except CrowdfundError as e:
            error = SyncFailed(
                f"full refresh failed: {e.message}", e.operation, e.campaign_id
            )
            error.__cause__ = e
            if ticket == self._latest_full_refresh:
                self.status_board.refresh_failed(error.to_dict())
            logger.error("Full refresh %s failed: %s", ticket, e.to_dict())
            raise error from e
        except Exception as e:
            if ticket == self._latest_full_refresh:
                self.status_board.refresh_failed(
                    SyncFailed(f"full refresh failed: {e!r}", "full_refresh").to_dict()
                )
            logger.exception("Full refresh %s failed unexpectedly", ticket)
            raise

        if ticket != self._latest_full_refresh:
            logger.info(
                "Full refresh %s superseded by %s, discarding result",
                ticket,
                self._latest_full_refresh,
            )
            return False

        self.store.upsert_many(campaigns, ticket)
        self.store.set_count(count)
        self.status_board.refresh_succeeded()
        logger.info(
            "Full refresh %s committed: count %s, %s records fetched",
            ticket,
            count,
            len(campaigns),
        )
        return True

    async def targeted_refresh(self, campaign_id: int) -> Campaign:
        ticket = self._next_ticket()
        try:
            campaign = await self._fetch(campaign_id)
        except CrowdfundError as e:
            logger.error("Targeted refresh of campaign %s failed: %s", campaign_id, e.to_dict())
            raise SyncFailed(
                f"refresh of campaign {campaign_id} failed: {e.message}",
                e.operation,
                campaign_id,
            ) from e

        if self._is_stale(ticket):
            logger.info("Discarding refresh of campaign %s started before reset", campaign_id)
            return self.store.get(campaign_id)
        self.store.upsert(campaign, ticket)
        logger.info(
            "Campaign %s refreshed: raised %s, claimed %s",
            campaign_id,
            campaign.amount_raised,
            campaign.claimed,
        )
        return self.store.get(campaign_id)

    async def refresh_new_campaigns(self) -> List[int]:
        """Re-read the count and fetch only the ids above the known count."""
        ticket = self._next_ticket()
        known_count = self.store.count
        try:
            count = await self.ledger.get_campaign_count()
            campaigns = await self._fetch_all(
                range(known_count + 1, count + 1)
            )
        except CrowdfundError as e:
            logger.error("Fetching new campaigns failed: %s", e.to_dict())
            raise SyncFailed(
                f"fetching new campaigns failed: {e.message}", e.operation, e.campaign_id
            ) from e

        if self._is_stale(ticket):
            logger.info("Discarding new campaigns fetched before reset")
            return []
        self.store.upsert_many(campaigns, ticket)
        self.store.set_count(count)
        logger.info("Campaign count %s -> %s", known_count, count)
        return [c.id for c in campaigns]
