import pytest

from ledger_fakes import NOW, FakeLedgerClient
from services.campaign_store import CampaignStore
from services.crowdfunding_service import CrowdfundingService
from services.status_board import StatusBoard
from services.sync_engine import SyncEngine
from services.transaction_coordinator import TransactionCoordinator


@pytest.fixture
def ledger():
    return FakeLedgerClient()


@pytest.fixture
def store():
    return CampaignStore()


@pytest.fixture
def status_board():
    return StatusBoard()


@pytest.fixture
def sync_engine(ledger, store, status_board):
    return SyncEngine(ledger, store, status_board, max_parallel_fetches=4)


@pytest.fixture
def coordinator(ledger, store, sync_engine, status_board):
    return TransactionCoordinator(
        ledger, store, sync_engine, status_board, clock=lambda: NOW
    )


@pytest.fixture
def service(ledger):
    return CrowdfundingService(ledger, max_parallel_fetches=4, clock=lambda: NOW)
