from typing import Optional


class CrowdfundError(Exception):
    """Base class for every failure surfaced by the sync/transaction core.

    Carries the operation that failed and the campaign id it concerned, so the
    error can be reported verbatim to the user.
    """

    code = "crowdfund_error"
    origin = "client"

    def __init__(
        self,
        message: str = "",
        operation: Optional[str] = None,
        campaign_id: Optional[int] = None,
    ):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.operation = operation
        self.campaign_id = campaign_id

    def to_dict(self) -> dict:
        data = {
            "code": self.code,
            "origin": self.origin,
            "message": self.message,
            "operation": self.operation,
            "campaign_id": self.campaign_id,
        }
        if isinstance(self.__cause__, CrowdfundError):
            data["cause"] = self.__cause__.to_dict()
        return data


class ConfigurationError(CrowdfundError):
    code = "configuration_error"


class InvalidAmount(CrowdfundError):
    code = "invalid_amount"


class MalformedRecord(CrowdfundError):
    code = "malformed_record"


class SyncFailed(CrowdfundError):
    code = "sync_failed"


class PreconditionNotMet(CrowdfundError):
    code = "precondition_not_met"


class AlreadyInFlight(CrowdfundError):
    code = "already_in_flight"


class LedgerError(CrowdfundError):
    """Raised by LedgerClient; never retried automatically."""

    code = "ledger_error"
    origin = "ledger"


class NodeUnavailable(LedgerError):
    code = "node_unavailable"


class CallReverted(LedgerError):
    code = "call_reverted"


class NotFound(LedgerError):
    code = "not_found"


class Rejected(LedgerError):
    code = "rejected"


class ConfirmationTimeout(Rejected):
    code = "confirmation_timeout"
