import asyncio

import pytest
from pydantic import ValidationError

from core.exceptions import NodeUnavailable
from ledger_fakes import BACKER, PAST_DEADLINE, settle
from schemas.action_status import ActionPhase
from schemas.intents import (
    ClaimFundsIntent,
    ClaimRefundIntent,
    ContributeIntent,
    CreateCampaignIntent,
)
from services.campaign_store import RecordState


@pytest.mark.asyncio
async def test_create_campaign_from_empty_ledger(ledger, store, coordinator):
    """campaignCount=0 -> Create confirmed -> one record, unclaimed, nothing raised"""
    outcome = await coordinator.submit(CreateCampaignIntent(goal="1000", deadline=1999999999))

    assert outcome.succeeded is True
    assert outcome.phase == ActionPhase.idle
    assert outcome.refreshed_ids == [1]
    assert store.count == 1
    [campaign] = store.get_all()
    assert campaign.id == 1
    assert campaign.goal == "1000"
    assert campaign.deadline == 1999999999
    assert campaign.claimed is False
    assert campaign.amount_raised == "0"
    assert ledger.writes()[0][0] == "create_campaign"


@pytest.mark.asyncio
async def test_contribute_takes_amount_raised_from_ledger(ledger, store, sync_engine, coordinator):
    """The refreshed value comes from the ledger, not local pre-value + amount"""
    ledger.add_campaign(amount_raised=0)
    await sync_engine.full_refresh()
    # local view drifted from the ledger
    store.upsert(store.get(1).model_copy(update={"amount_raised": "123"}))

    outcome = await coordinator.submit(ContributeIntent(campaign_id=1, amount="500"))

    assert outcome.succeeded is True
    assert outcome.refreshed_ids == [1]
    assert store.get(1).amount_raised == "500"


@pytest.mark.asyncio
async def test_contribute_encodes_amount_for_the_ledger(ledger, sync_engine, coordinator):
    ledger.add_campaign()
    await sync_engine.full_refresh()

    await coordinator.submit(ContributeIntent(campaign_id=1, amount=str(2**130 + 7)))

    _, campaign_id, amount = ledger.writes()[0]
    assert campaign_id == 1
    assert (amount.low, amount.high) == (7, 4)


@pytest.mark.asyncio
async def test_second_intent_for_same_id_is_refused(ledger, store, sync_engine, coordinator, status_board):
    ledger.add_campaign()
    await sync_engine.full_refresh()
    ledger.confirm_gate = asyncio.Event()

    first = asyncio.create_task(coordinator.submit(ContributeIntent(campaign_id=1, amount="10")))
    await settle()
    assert coordinator.phase(1) == ActionPhase.awaiting_confirmation
    assert store.state(1) == RecordState.pending

    second = await coordinator.submit(ContributeIntent(campaign_id=1, amount="20"))

    assert second.succeeded is False
    assert second.error["code"] == "already_in_flight"
    # the first action still owns the status entry
    assert status_board.get(1).phase == ActionPhase.awaiting_confirmation
    assert len(ledger.writes()) == 1

    ledger.confirm_gate.set()
    outcome = await first
    assert outcome.succeeded is True
    assert store.get(1).amount_raised == "10"
    assert store.state(1) == RecordState.fresh
    assert coordinator.phase(1) == ActionPhase.idle


@pytest.mark.asyncio
async def test_intents_for_different_ids_run_concurrently(ledger, store, sync_engine, coordinator):
    ledger.add_campaign()
    ledger.add_campaign()
    await sync_engine.full_refresh()
    ledger.confirm_gate = asyncio.Event()

    first = asyncio.create_task(coordinator.submit(ContributeIntent(campaign_id=1, amount="1")))
    second = asyncio.create_task(coordinator.submit(ContributeIntent(campaign_id=2, amount="2")))
    await settle()
    assert coordinator.phase(1) == ActionPhase.awaiting_confirmation
    assert coordinator.phase(2) == ActionPhase.awaiting_confirmation

    ledger.confirm_gate.set()
    outcomes = await asyncio.gather(first, second)

    assert all(o.succeeded for o in outcomes)
    assert store.get(1).amount_raised == "1"
    assert store.get(2).amount_raised == "2"


@pytest.mark.asyncio
async def test_claim_refund_before_deadline_is_refused_locally(ledger, store, sync_engine, coordinator, status_board):
    ledger.add_campaign()
    ledger.add_campaign()  # deadline in the future
    await sync_engine.full_refresh()
    before = store.get_all()
    ledger.calls.clear()

    outcome = await coordinator.submit(ClaimRefundIntent(campaign_id=2))

    assert outcome.succeeded is False
    assert outcome.error["code"] == "precondition_not_met"
    assert outcome.error["origin"] == "client"
    assert ledger.calls == []
    assert store.get_all() == before
    assert status_board.get(2).phase == ActionPhase.failed


@pytest.mark.asyncio
async def test_claim_refund_after_deadline(ledger, store, sync_engine, coordinator):
    ledger.add_campaign(deadline=PAST_DEADLINE, amount_raised=10)
    await sync_engine.full_refresh()

    outcome = await coordinator.submit(ClaimRefundIntent(campaign_id=1))

    assert outcome.succeeded is True
    assert store.get(1).claimed is True


@pytest.mark.asyncio
async def test_claim_funds_requires_creator(ledger, sync_engine, coordinator):
    ledger.add_campaign(creator=BACKER)
    await sync_engine.full_refresh()
    ledger.calls.clear()

    outcome = await coordinator.submit(ClaimFundsIntent(campaign_id=1))

    assert outcome.error["code"] == "precondition_not_met"
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_claim_funds_by_creator(ledger, store, sync_engine, coordinator):
    ledger.add_campaign(creator=ledger.account_address.lower())
    await sync_engine.full_refresh()

    outcome = await coordinator.submit(ClaimFundsIntent(campaign_id=1))

    assert outcome.succeeded is True
    assert store.get(1).claimed is True


@pytest.mark.asyncio
async def test_claimed_campaign_refuses_every_intent(ledger, sync_engine, coordinator):
    ledger.add_campaign(claimed=True, deadline=PAST_DEADLINE)
    await sync_engine.full_refresh()
    ledger.calls.clear()

    for intent in [
        ContributeIntent(campaign_id=1, amount="1"),
        ClaimFundsIntent(campaign_id=1),
        ClaimRefundIntent(campaign_id=1),
    ]:
        outcome = await coordinator.submit(intent)
        assert outcome.error["code"] == "precondition_not_met"

    assert ledger.calls == []


@pytest.mark.asyncio
async def test_unknown_campaign_is_refused(ledger, coordinator):
    outcome = await coordinator.submit(ContributeIntent(campaign_id=9, amount="1"))

    assert outcome.error["code"] == "precondition_not_met"
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_invalid_amounts_never_reach_ledger(ledger, sync_engine, coordinator):
    ledger.add_campaign()
    await sync_engine.full_refresh()
    ledger.calls.clear()

    for intent in [
        ContributeIntent(campaign_id=1, amount="1.5"),
        ContributeIntent(campaign_id=1, amount=""),
        ContributeIntent(campaign_id=1, amount=str(2**256)),
        CreateCampaignIntent(goal="-5", deadline=1),
    ]:
        outcome = await coordinator.submit(intent)
        assert outcome.error["code"] == "invalid_amount"

    assert ledger.calls == []


@pytest.mark.asyncio
async def test_zero_contribution_is_left_to_the_ledger(ledger, store, sync_engine, coordinator):
    ledger.add_campaign(amount_raised=4)
    await sync_engine.full_refresh()

    outcome = await coordinator.submit(ContributeIntent(campaign_id=1, amount="0"))

    assert outcome.succeeded is True
    _, campaign_id, amount = ledger.writes()[0]
    assert (campaign_id, amount.low, amount.high) == (1, 0, 0)
    assert store.get(1).amount_raised == "4"


@pytest.mark.parametrize(
    "build",
    [
        lambda: CreateCampaignIntent(goal="1000", deadline=2**64),
        lambda: ContributeIntent(campaign_id=2**64, amount="1"),
        lambda: ClaimRefundIntent(campaign_id=2**64),
    ],
)
def test_values_wider_than_uint64_are_refused(build):
    with pytest.raises(ValidationError):
        build()


def test_largest_uint64_deadline_is_accepted():
    assert CreateCampaignIntent(goal="1", deadline=2**64 - 1).deadline == 2**64 - 1


@pytest.mark.asyncio
async def test_late_contribution_is_left_to_the_ledger(ledger, store, sync_engine, coordinator):
    ledger.add_campaign(deadline=PAST_DEADLINE)
    await sync_engine.full_refresh()

    outcome = await coordinator.submit(ContributeIntent(campaign_id=1, amount="5"))

    assert outcome.succeeded is True
    assert store.get(1).amount_raised == "5"


@pytest.mark.asyncio
async def test_rejected_transaction_does_not_refresh(ledger, store, sync_engine, coordinator, status_board):
    ledger.add_campaign(amount_raised=3)
    await sync_engine.full_refresh()
    ledger.reject_next = True
    ledger.calls.clear()

    outcome = await coordinator.submit(ContributeIntent(campaign_id=1, amount="5"))

    assert outcome.succeeded is False
    assert outcome.phase == ActionPhase.failed
    assert outcome.error["code"] == "rejected"
    assert outcome.error["origin"] == "ledger"
    assert outcome.tx_hash is not None
    assert ("get_campaign", 1) not in ledger.calls
    assert store.get(1).amount_raised == "3"
    assert store.state(1) == RecordState.fresh
    assert coordinator.phase(1) == ActionPhase.idle
    assert status_board.get(1).error["code"] == "rejected"


@pytest.mark.asyncio
async def test_submission_failure_is_surfaced_not_retried(ledger, sync_engine, coordinator):
    ledger.add_campaign()
    await sync_engine.full_refresh()
    ledger.fail_send = NodeUnavailable("connection refused", "claim_refund", 1)
    ledger.campaigns[1]["deadline"] = PAST_DEADLINE
    await sync_engine.targeted_refresh(1)

    outcome = await coordinator.submit(ClaimRefundIntent(campaign_id=1))

    assert outcome.error["code"] == "node_unavailable"
    assert outcome.error["campaign_id"] == 1
    assert outcome.tx_hash is None
    assert [c[0] for c in ledger.writes()] == ["claim_refund"]
    assert coordinator.phase(1) == ActionPhase.idle


@pytest.mark.asyncio
async def test_refresh_failure_after_inclusion_fails_action(ledger, store, sync_engine, coordinator):
    ledger.add_campaign()
    await sync_engine.full_refresh()
    ledger.fail_get = {1}

    outcome = await coordinator.submit(ContributeIntent(campaign_id=1, amount="5"))

    assert outcome.succeeded is False
    assert outcome.error["code"] == "sync_failed"
    assert outcome.tx_hash is not None
    # the ledger moved but the local record is left as last read
    assert ledger.campaigns[1]["amount_raised"] == 5
    assert store.get(1).amount_raised == "0"


@pytest.mark.asyncio
async def test_phases_are_published_in_order(ledger, sync_engine, coordinator, status_board):
    ledger.add_campaign()
    await sync_engine.full_refresh()
    phases = []
    status_board.subscribe(lambda topic, status: phases.append(status.phase), key=1)

    await coordinator.submit(ContributeIntent(campaign_id=1, amount="5"))

    assert phases == [
        ActionPhase.submitting,
        ActionPhase.awaiting_confirmation,
        ActionPhase.refreshing,
        ActionPhase.idle,
    ]


@pytest.mark.asyncio
async def test_only_one_create_in_flight(ledger, coordinator):
    ledger.confirm_gate = asyncio.Event()

    first = asyncio.create_task(
        coordinator.submit(CreateCampaignIntent(goal="10", deadline=1999999999))
    )
    await settle()
    second = await coordinator.submit(CreateCampaignIntent(goal="20", deadline=1999999999))
    assert second.error["code"] == "already_in_flight"

    ledger.confirm_gate.set()
    assert (await first).succeeded is True
