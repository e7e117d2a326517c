import asyncio
import json
import logging
from typing import Awaitable, Callable

import click

from core.config import settings
from core.constants import UINT64_MAX
from core.exceptions import CrowdfundError
from log import setup_logging_to_console, setup_logging_to_file
from schemas.action_status import TransactionOutcome
from schemas.intents import (
    ClaimFundsIntent,
    ClaimRefundIntent,
    ContributeIntent,
    CreateCampaignIntent,
)
from services.crowdfunding_service import CrowdfundingService

logger = logging.getLogger("campaigns_cli")


def run(action: Callable[[CrowdfundingService], Awaitable]):
    async def _run():
        service = CrowdfundingService.from_settings(settings)
        await service.start()
        try:
            return await action(service)
        finally:
            await service.stop()

    try:
        return asyncio.run(_run())
    except CrowdfundError as e:
        raise click.ClickException(json.dumps(e.to_dict()))


def echo_campaigns(campaigns):
    click.echo(json.dumps([c.model_dump() for c in campaigns], indent=2))


def submit(intent):
    async def action(service: CrowdfundingService) -> TransactionOutcome:
        # preconditions are checked against the local view
        await service.refresh_all()
        return await service.submit(intent)

    outcome = run(action)
    click.echo(outcome.model_dump_json(indent=2))
    if not outcome.succeeded:
        raise click.ClickException(outcome.error["code"])


@click.group()
@click.option("--log-level", default="INFO", help="Logging level")
def cli(log_level: str):
    """Browse, create, fund and settle crowdfunding campaigns."""
    level = logging.getLevelName(log_level.upper())
    setup_logging_to_console(level=level)
    setup_logging_to_file(app="campaigns_cli", level=level)


@cli.command(name="list")
def list_campaigns():
    echo_campaigns(run(lambda service: service.refresh_all()))


@cli.command()
@click.option("--force", is_flag=True, help="Re-fetch every campaign even if the count is unchanged")
def refresh(force: bool):
    echo_campaigns(run(lambda service: service.refresh_all(force=force)))


@cli.command()
@click.option("--goal", required=True, type=str, help="Goal amount in wei")
@click.option("--deadline", required=True, type=click.IntRange(min=0, max=UINT64_MAX), help="Unix timestamp")
def create(goal: str, deadline: int):
    submit(CreateCampaignIntent(goal=goal, deadline=deadline))


@cli.command()
@click.argument("campaign_id", type=click.IntRange(min=1, max=UINT64_MAX))
@click.option("--amount", required=True, type=str, help="Contribution in wei")
def contribute(campaign_id: int, amount: str):
    submit(ContributeIntent(campaign_id=campaign_id, amount=amount))


@cli.command(name="claim-funds")
@click.argument("campaign_id", type=click.IntRange(min=1, max=UINT64_MAX))
def claim_funds(campaign_id: int):
    submit(ClaimFundsIntent(campaign_id=campaign_id))


@cli.command(name="claim-refund")
@click.argument("campaign_id", type=click.IntRange(min=1, max=UINT64_MAX))
def claim_refund(campaign_id: int):
    submit(ClaimRefundIntent(campaign_id=campaign_id))


if __name__ == "__main__":
    cli()
