from enum import Enum

CROWDFUNDING_ABI = "crowdfunding"

UINT128_BITS = 128
UINT128_MAX = 2**UINT128_BITS - 1
UINT256_MAX = 2**256 - 1
# Campaign ids and deadlines are uint64 on the contract
UINT64_MAX = 2**64 - 1

# Campaign ids are assigned by the contract starting at 1
FIRST_CAMPAIGN_ID = 1

# Key of the in-flight slot shared by every Create intent
CREATE_KEY = "create"


class ContractMethod(str, Enum):
    GET_CAMPAIGN_COUNT = "get_campaign_count"
    GET_CAMPAIGN = "get_campaign"
    CREATE_CAMPAIGN = "create_campaign"
    CONTRIBUTE = "contribute"
    CLAIM_FUNDS = "claim_funds"
    CLAIM_REFUND = "claim_refund"
