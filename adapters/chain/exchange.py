from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract


ABI_EXCHANGE = [
    {
        "name": "exchange",
        "inputs": [
            {"type": "address", "name": "fromToken"},
            {"type": "address", "name": "toToken"},
            {"type": "uint256", "name": "amount"},
            {"type": "uint256", "name": "minAmountOut"},
        ],
        "outputs": [{"type": "uint256", "name": "amountOut"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class ExchangeAdapter:
    def __init__(self, w3: AsyncWeb3, address: str):
        if not address:
            raise RuntimeError("ExchangeAdapter: address not configured")
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.contract: AsyncContract = w3.eth.contract(address=self.address, abi=ABI_EXCHANGE)

    def encode_exchange(self, from_token: str, to_token: str, amount: int, min_amount_out: int = 0) -> str:
        """
        exchange(fromToken, toToken, amount, minAmountOut) calldata.
        Quotes run with min_amount_out == 0: nothing real moves, so no slippage guard.
        """
        return self.contract.encode_abi(
            "exchange",
            args=[
                Web3.to_checksum_address(from_token),
                Web3.to_checksum_address(to_token),
                int(amount),
                int(min_amount_out),
            ],
        )
