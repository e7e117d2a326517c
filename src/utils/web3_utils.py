from hexbytes import HexBytes
from web3 import AsyncWeb3


async def sign_and_send_transaction(
    web3: AsyncWeb3, function, args, from_address, private_key, value: int = None
) -> HexBytes:
    cnt = await web3.eth.get_transaction_count(from_address, "pending")
    transaction = {"from": from_address, "nonce": cnt}
    if value is not None:
        transaction["value"] = value

    tx = await function(*args).build_transaction(transaction)
    signed_tx = web3.eth.account.sign_transaction(tx, private_key)
    return await web3.eth.send_raw_transaction(signed_tx.raw_transaction)


def to_hex_hash(tx_hash) -> str:
    tx_hash = HexBytes(tx_hash).hex()
    return tx_hash if tx_hash.startswith("0x") else f"0x{tx_hash}"
