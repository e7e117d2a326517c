import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import aiohttp
from eth_account import Account
from pydantic import ValidationError
from web3 import AsyncWeb3, Web3
from web3.exceptions import (
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    Web3Exception,
    Web3RPCError,
)

from core import constants
from core.abi_reader import read_abi
from core.config import LedgerConfig
from core.constants import ContractMethod
from core.exceptions import (
    CallReverted,
    ConfirmationTimeout,
    LedgerError,
    MalformedRecord,
    NodeUnavailable,
    NotFound,
)
from schemas.ledger import (
    ConfirmationResult,
    ConfirmationStatus,
    RawCampaign,
    TransactionHandle,
    Uint256,
)
from utils.web3_utils import sign_and_send_transaction, to_hex_hash

logger = logging.getLogger(__name__)

CONNECTION_ERRORS = (
    ProviderConnectionError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
)


class LedgerClient:
    """Thin adapter over the deployed crowdfunding contract.

    Reads are plain ``call``s; writes are signed locally and return a
    ``TransactionHandle`` immediately. Confirmation is awaited separately
    with ``wait_for_confirmation`` so callers can observe each phase.
    """

    def __init__(
        self,
        config: LedgerConfig,
        w3: Optional[AsyncWeb3] = None,
        confirmation_timeout: float = 120,
        poll_latency: float = 1.0,
    ):
        self.config = config
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.node_url))
        self.contract = self.w3.eth.contract(
            address=config.contract_address,
            abi=read_abi(constants.CROWDFUNDING_ABI),
        )
        self._private_key = config.signing_credential.get_secret_value()
        self.account_address = config.account_address or Web3.to_checksum_address(
            Account.from_key(self._private_key).address
        )
        self.confirmation_timeout = confirmation_timeout
        self.poll_latency = poll_latency
        # nonce read and send must not interleave between two submissions
        self._send_lock = asyncio.Lock()

    @asynccontextmanager
    async def _ledger_call(self, operation: str, campaign_id: Optional[int] = None):
        try:
            yield
        except LedgerError:
            raise
        except ContractLogicError as e:
            if operation == ContractMethod.GET_CAMPAIGN.value:
                raise NotFound(str(e), operation, campaign_id) from e
            raise CallReverted(str(e), operation, campaign_id) from e
        except Web3RPCError as e:
            raise CallReverted(str(e), operation, campaign_id) from e
        except CONNECTION_ERRORS as e:
            raise NodeUnavailable(str(e), operation, campaign_id) from e
        except Web3Exception as e:
            # e.g. undecodable output from a wrong address or network
            raise CallReverted(f"{type(e).__name__}: {e}", operation, campaign_id) from e

    async def connect(self) -> int:
        async with self._ledger_call("chain_id"):
            chain_id = await self.w3.eth.chain_id
        logger.info(
            "Connected to node %s, chain id %s, contract %s, account %s",
            self.config.node_url,
            chain_id,
            self.config.contract_address,
            self.account_address,
        )
        return chain_id

    async def get_campaign_count(self) -> int:
        operation = ContractMethod.GET_CAMPAIGN_COUNT.value
        async with self._ledger_call(operation):
            count = await self.contract.functions.get_campaign_count().call()
        logger.debug("Campaign count: %s", count)
        return int(count)

    async def get_campaign(self, campaign_id: int) -> RawCampaign:
        operation = ContractMethod.GET_CAMPAIGN.value
        if campaign_id < constants.FIRST_CAMPAIGN_ID:
            raise NotFound(f"campaign {campaign_id} out of range", operation, campaign_id)

        async with self._ledger_call(operation, campaign_id):
            result = await self.contract.functions.get_campaign(campaign_id).call()

        try:
            creator, goal, deadline, amount_raised, claimed = result
            return RawCampaign(
                creator=creator,
                goal=Uint256(low=goal[0], high=goal[1]),
                deadline=deadline,
                amount_raised=Uint256(low=amount_raised[0], high=amount_raised[1]),
                claimed=claimed,
            )
        except (ValueError, TypeError, IndexError, ValidationError) as e:
            raise MalformedRecord(str(e), operation, campaign_id) from e

    async def _send(self, method: ContractMethod, args: list, campaign_id=None):
        operation = method.value
        async with self._ledger_call(operation, campaign_id):
            async with self._send_lock:
                tx_hash = await sign_and_send_transaction(
                    self.w3,
                    getattr(self.contract.functions, operation),
                    args,
                    self.account_address,
                    self._private_key,
                )
        handle = TransactionHandle(
            tx_hash=to_hex_hash(tx_hash), operation=operation, campaign_id=campaign_id
        )
        logger.info("Submitted %s for campaign %s: %s", operation, campaign_id, handle.tx_hash)
        return handle

    async def create_campaign(self, goal: Uint256, deadline: int) -> TransactionHandle:
        return await self._send(
            ContractMethod.CREATE_CAMPAIGN, [goal.as_tuple(), deadline]
        )

    async def contribute(self, campaign_id: int, amount: Uint256) -> TransactionHandle:
        return await self._send(
            ContractMethod.CONTRIBUTE, [campaign_id, amount.as_tuple()], campaign_id
        )

    async def claim_funds(self, campaign_id: int) -> TransactionHandle:
        return await self._send(ContractMethod.CLAIM_FUNDS, [campaign_id], campaign_id)

    async def claim_refund(self, campaign_id: int) -> TransactionHandle:
        return await self._send(ContractMethod.CLAIM_REFUND, [campaign_id], campaign_id)

    async def wait_for_confirmation(self, handle: TransactionHandle) -> ConfirmationResult:
        async with self._ledger_call(handle.operation, handle.campaign_id):
            try:
                receipt = await self.w3.eth.wait_for_transaction_receipt(
                    handle.tx_hash,
                    timeout=self.confirmation_timeout,
                    poll_latency=self.poll_latency,
                )
            except TimeExhausted as e:
                raise ConfirmationTimeout(
                    f"{handle.tx_hash} not confirmed after {self.confirmation_timeout}s",
                    handle.operation,
                    handle.campaign_id,
                ) from e

        if receipt["status"] == 1:
            return ConfirmationResult(
                status=ConfirmationStatus.included,
                block_number=receipt["blockNumber"],
            )
        return ConfirmationResult(
            status=ConfirmationStatus.rejected,
            block_number=receipt.get("blockNumber"),
            reason=f"transaction {handle.tx_hash} reverted",
        )
