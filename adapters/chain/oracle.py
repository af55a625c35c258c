from typing import Optional

from eth_utils import keccak
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.contract.async_contract import AsyncContractFunction


EVENT_PRICE_REQUESTED = {
    "type": "event",
    "name": "PriceRequested",
    "anonymous": False,
    "inputs": [
        {"indexed": False, "type": "address", "name": "fromToken"},
        {"indexed": False, "type": "address", "name": "toToken"},
    ],
}

SUBMIT_PRICE_BY_PAIR = "submitPrice(address,address,uint256,uint8)"
SUBMIT_PRICE_BY_KEY = "submitPrice(bytes32,uint256,uint8)"

ABI_ORACLE = [
    EVENT_PRICE_REQUESTED,
    {
        "name": "submitPrice",
        "inputs": [
            {"type": "address", "name": "fromToken"},
            {"type": "address", "name": "toToken"},
            {"type": "uint256", "name": "amount"},
            {"type": "uint8", "name": "decimals"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "name": "submitPrice",
        "inputs": [
            {"type": "bytes32", "name": "requestKey"},
            {"type": "uint256", "name": "amount"},
            {"type": "uint8", "name": "decimals"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


def event_signature(event_abi: dict) -> str:
    types = ",".join(i["type"] for i in event_abi.get("inputs") or [])
    return f"{event_abi['name']}({types})"


def event_topic(event_abi: dict) -> str:
    """
    topic0 of an event ABI entry: keccak256("Name(type1,type2,...)").
    """
    return "0x" + keccak(text=event_signature(event_abi)).hex()


class OracleAdapter:
    def __init__(self, w3: AsyncWeb3, address: str):
        if not address:
            raise RuntimeError("OracleAdapter: address not configured")
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.contract: AsyncContract = w3.eth.contract(address=self.address, abi=ABI_ORACLE)

    # ---------------- fn builders (for TxService.send) ----------------

    def fn_submit_price(
        self,
        from_token: str,
        to_token: str,
        amount: int,
        decimals: int,
        request_key: Optional[str] = None,
    ) -> AsyncContractFunction:
        """
        submitPrice for one request: keyed requests answer by key, the rest by token pair.
        """
        if request_key is not None:
            fn = self.contract.get_function_by_signature(SUBMIT_PRICE_BY_KEY)
            return fn(Web3.to_bytes(hexstr=request_key), int(amount), int(decimals))

        fn = self.contract.get_function_by_signature(SUBMIT_PRICE_BY_PAIR)
        return fn(
            Web3.to_checksum_address(from_token),
            Web3.to_checksum_address(to_token),
            int(amount),
            int(decimals),
        )
