from typing import Any, Optional


class RelayError(Exception):
    """
    Base class for every error raised by the price relay pipeline.
    """


class InvalidInputError(RelayError):
    """
    Local precondition violation (malformed address / amount).
    Nothing was sent anywhere.
    """


class InvalidAddressError(InvalidInputError):
    def __init__(self, value: Any, field_name: str = "address"):
        super().__init__(f"Invalid {field_name}: {value!r}")
        self.value = value
        self.field_name = field_name


class InvalidAmountError(InvalidInputError):
    def __init__(self, value: Any, msg: Optional[str] = None):
        super().__init__(msg or f"Invalid amount: {value!r} (expected integer in [0, 2**256))")
        self.value = value


class MalformedEventError(RelayError):
    """
    Raised when a log matched the PriceRequested topic but could not be decoded.
    The topic match means the shape should be trustworthy, so this is fatal for that log.
    """
    def __init__(self, msg: str, log: Optional[dict] = None):
        super().__init__(msg)
        self.msg = msg
        self.log = log


class SimulationUnavailableError(RelayError):
    """
    Transport / RPC failure talking to the simulation endpoint.
    Not retried here: the caller decides.
    """
    def __init__(self, msg: str, method: str = "", url: str = "", rpc_error: Optional[dict] = None):
        super().__init__(msg)
        self.msg = msg
        self.method = method
        self.url = url
        self.rpc_error = rpc_error


class MalformedSimulationResultError(RelayError):
    """
    The simulation endpoint answered, but not with the per-call trace list we expect.
    """
    def __init__(self, msg: str, result: Any = None):
        super().__init__(msg)
        self.msg = msg
        self.result = result


class TransactionRevertedError(Exception):
    """
    Raised when the tx was actually sent on-chain, mined, and status == 0.
    You ALREADY paid gas, the chain executed and reverted.
    """
    def __init__(self, tx_hash: str, receipt: dict, msg: str, nonce: Optional[int] = None):
        super().__init__(msg)
        self.tx_hash = tx_hash
        self.receipt = receipt
        self.msg = msg
        self.nonce = nonce
