from typing import Optional

from pydantic import BaseModel, SecretStr, field_validator
from pydantic_settings import BaseSettings
from web3 import Web3

from core.exceptions import ConfigurationError


class LedgerConfig(BaseModel):
    node_url: str
    contract_address: str
    signing_credential: SecretStr
    account_address: Optional[str] = None

    @field_validator("contract_address", "account_address")
    def to_checksum(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not Web3.is_address(v):
            raise ValueError(f"invalid address {v}")
        return Web3.to_checksum_address(v)


class Settings(BaseSettings):

    PROJECT_NAME: str = "crowdfund-sync"
    API_V1_STR: str = "/api/v1"

    NODE_URL: Optional[str] = None
    CONTRACT_ADDRESS: Optional[str] = None
    # Derived from SIGNING_CREDENTIAL when not set
    ACCOUNT_ADDRESS: Optional[str] = None
    SIGNING_CREDENTIAL: Optional[SecretStr] = None

    CONFIRMATION_TIMEOUT_SECONDS: float = 120
    CONFIRMATION_POLL_SECONDS: float = 1.0
    MAX_PARALLEL_FETCHES: int = 8

    # Seq log
    SEQ_SERVER_URL: Optional[str] = None
    SEQ_SERVER_API_KEY: Optional[str] = None

    def ledger_config(self) -> LedgerConfig:
        missing = [
            name
            for name in ("NODE_URL", "CONTRACT_ADDRESS", "SIGNING_CREDENTIAL")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"Missing environment variables: {', '.join(missing)}",
                operation="ledger_config",
            )
        try:
            return LedgerConfig(
                node_url=self.NODE_URL,
                contract_address=self.CONTRACT_ADDRESS,
                signing_credential=self.SIGNING_CREDENTIAL,
                account_address=self.ACCOUNT_ADDRESS,
            )
        except ValueError as e:
            raise ConfigurationError(str(e), operation="ledger_config") from e

    class Config:

        case_sensitive = True
        env_file = "../.env"
        extra = "allow"


settings = Settings()
