import json
from functools import lru_cache
from pathlib import Path

ABI_DIR = Path(__file__).resolve().parent.parent / "abis"


@lru_cache(maxsize=None)
def read_abi(abi_name: str) -> list:
    with open(ABI_DIR / f"{abi_name}.json") as f:
        return json.load(f)
