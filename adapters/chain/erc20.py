from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract

from core.services.utils import UINT256_MAX


ABI_ERC20 = [
    {"name": "decimals", "outputs": [{"type": "uint8"}], "inputs": [], "stateMutability": "view", "type": "function"},
    {"name": "approve", "outputs": [{"type": "bool"}], "inputs": [{"type": "address", "name": "spender"}, {"type": "uint256", "name": "amount"}], "stateMutability": "nonpayable", "type": "function"},
]


class Erc20Adapter:
    def __init__(self, w3: AsyncWeb3, address: str):
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.contract: AsyncContract = w3.eth.contract(address=self.address, abi=ABI_ERC20)

    # ---------------- views ----------------

    async def decimals(self) -> int:
        return int(await self.contract.functions.decimals().call())

    # ---------------- calldata ----------------

    def encode_approve(self, spender: str, amount: int = UINT256_MAX) -> str:
        """
        approve(spender, amount) calldata; defaults to an unlimited allowance.
        """
        return self.contract.encode_abi("approve", args=[Web3.to_checksum_address(spender), int(amount)])
