import enum
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Set, Union

from pydantic import ValidationError

from core.exceptions import MalformedRecord
from schemas.campaign import Campaign

logger = logging.getLogger(__name__)


class RecordState(str, enum.Enum):
    fresh = "fresh"
    pending = "pending"


class CampaignStore:
    """In-memory cache of campaign records keyed by id.

    Only SyncEngine and TransactionCoordinator write to it. Each record keeps
    the ticket of the read that produced it so a slower, older read can never
    replace a newer one.
    """

    def __init__(self):
        self._campaigns: Dict[int, Campaign] = {}
        self._tickets: Dict[int, int] = {}
        self._pending: Set[int] = set()
        self.count = 0

    def get(self, campaign_id: int) -> Optional[Campaign]:
        return self._campaigns.get(campaign_id)

    def get_all(self) -> List[Campaign]:
        return [self._campaigns[i] for i in sorted(self._campaigns)]

    def state(self, campaign_id: int) -> Optional[RecordState]:
        if campaign_id not in self._campaigns:
            return None
        if campaign_id in self._pending:
            return RecordState.pending
        return RecordState.fresh

    def ticket(self, campaign_id: int) -> int:
        return self._tickets.get(campaign_id, 0)

    @staticmethod
    def _validate(record: Union[Campaign, Mapping]) -> Campaign:
        if isinstance(record, Campaign):
            return record
        try:
            return Campaign.model_validate(record)
        except ValidationError as e:
            raise MalformedRecord(
                f"campaign record rejected: {e}",
                operation="upsert",
                campaign_id=record.get("id") if isinstance(record, Mapping) else None,
            ) from e

    def upsert(self, record: Union[Campaign, Mapping], ticket: int = 0) -> bool:
        """Replace the record with the same id.

        Returns False when a read with a newer ticket already wrote this id.
        """
        campaign = self._validate(record)
        if ticket and ticket < self.ticket(campaign.id):
            logger.info(
                "Discarding stale read of campaign %s (ticket %s < %s)",
                campaign.id,
                ticket,
                self.ticket(campaign.id),
            )
            return False
        self._campaigns[campaign.id] = campaign
        if ticket:
            self._tickets[campaign.id] = ticket
        return True

    def upsert_many(self, records: Iterable[Union[Campaign, Mapping]], ticket: int = 0) -> List[int]:
        # validate everything first so a bad record leaves the store untouched
        campaigns = [self._validate(r) for r in records]
        return [c.id for c in campaigns if self.upsert(c, ticket)]

    def set_count(self, count: int):
        if count < self.count:
            logger.warning("Ignoring campaign count decrease %s -> %s", self.count, count)
            return
        self.count = count

    def mark_pending(self, campaign_id: int):
        self._pending.add(campaign_id)

    def mark_fresh(self, campaign_id: int):
        self._pending.discard(campaign_id)

    def clear(self):
        self._campaigns.clear()
        self._tickets.clear()
        self._pending.clear()
        self.count = 0
