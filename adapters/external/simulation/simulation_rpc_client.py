from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from config import get_settings
from core.services.exceptions import MalformedSimulationResultError, SimulationUnavailableError


@dataclass
class SimulationRpcClient:
    """
    JSON-RPC client for the bundle-simulation endpoint (Tenderly-style
    `tenderly_simulateBundle(calls, blockTag, overrides)`).

    Transport failures, HTTP errors and JSON-RPC error objects all surface as
    SimulationUnavailableError; nothing is retried here.
    """

    url: str
    method: str = "tenderly_simulateBundle"
    timeout_sec: float = 30.0
    transport: Optional[httpx.AsyncBaseTransport] = None
    _ids: Any = field(default_factory=lambda: itertools.count(1), repr=False)

    @classmethod
    def from_settings(cls) -> "SimulationRpcClient":
        st = get_settings()
        url = (st.SIMULATION_RPC_URL or "").strip()
        if not url:
            raise RuntimeError("SIMULATION_RPC_URL not configured")
        return cls(url=url, method=st.SIMULATION_METHOD, timeout_sec=st.SIMULATION_TIMEOUT_SEC)

    async def simulate_bundle(
        self,
        calls: List[Dict[str, Any]],
        block_tag: str,
        overrides: Dict[str, Any],
    ) -> Any:
        """
        Sends one ordered bundle and returns the raw JSON-RPC `result`
        (one execution trace per call).
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": self.method,
            "params": [calls, block_tag, overrides],
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec, transport=self.transport) as cli:
                res = await cli.post(self.url, json=payload)
        except httpx.HTTPError as exc:
            raise SimulationUnavailableError(
                f"{self.method} transport error: {exc}", method=self.method, url=self.url
            ) from exc

        if res.status_code >= 400:
            raise SimulationUnavailableError(
                f"{self.method} http_error_{res.status_code}", method=self.method, url=self.url
            )

        try:
            data = res.json()
        except ValueError as exc:
            raise MalformedSimulationResultError(f"{self.method}: response is not JSON", result=res.text) from exc

        if not isinstance(data, dict):
            raise MalformedSimulationResultError(f"{self.method}: response is not a JSON-RPC object", result=data)

        err = data.get("error")
        if err:
            msg = err.get("message") if isinstance(err, dict) else str(err)
            raise SimulationUnavailableError(
                f"{self.method} rpc_error: {msg}",
                method=self.method,
                url=self.url,
                rpc_error=err if isinstance(err, dict) else {"message": str(err)},
            )

        if "result" not in data:
            raise MalformedSimulationResultError(f"{self.method}: missing 'result'", result=data)

        return data["result"]
