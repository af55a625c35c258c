from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException

from adapters.entry.http.dtos.price_relay_dtos import (
    QuoteRequest,
    QuoteResponse,
    RelayLogsRequest,
    RelayLogsResponse,
)
from core.domain.schemas.onchain_types import PriceRequest
from core.services.exceptions import (
    InvalidInputError,
    MalformedEventError,
    MalformedSimulationResultError,
    SimulationUnavailableError,
    TransactionRevertedError,
)
from core.services.quote_simulator import QuoteSimulator
from core.use_cases.price_relay_usecase import PriceRelayUseCase

router = APIRouter(prefix="/relay", tags=["price-relay"])

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


# one instance per process: its lock serializes batches that share the signer
@lru_cache()
def get_use_case() -> PriceRelayUseCase:
    return PriceRelayUseCase.from_settings()


@lru_cache()
def get_simulator() -> QuoteSimulator:
    return QuoteSimulator.from_settings()


@router.post(
    "/logs",
    response_model=RelayLogsResponse,
    summary="Decode PriceRequested logs, simulate each pair and submit prices to the oracle",
)
async def relay_logs(
    body: RelayLogsRequest,
    use_case: PriceRelayUseCase = Depends(get_use_case),
):
    try:
        outcomes = await use_case.relay_logs(body.logs)
        return RelayLogsResponse.from_outcomes(outcomes)

    except (InvalidInputError, MalformedEventError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SimulationUnavailableError as exc:
        raise HTTPException(
            status_code=502,
            detail={"error": "simulation_unavailable", "detail": str(exc)},
        ) from exc
    except TransactionRevertedError as exc:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "reverted_on_chain",
                "tx": exc.tx_hash,
                "nonce": exc.nonce,
                "hint": "Possibly require() failed or out-of-gas.",
            },
        ) from exc
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to relay logs: {exc}") from exc


@router.post(
    "/quote",
    response_model=QuoteResponse,
    summary="Simulate one exchange quote without submitting anything",
)
async def quote(
    body: QuoteRequest,
    simulator: QuoteSimulator = Depends(get_simulator),
):
    try:
        req = PriceRequest(
            from_token=body.from_token,
            to_token=body.to_token,
            oracle_address=ZERO_ADDRESS,
            amount=body.amount,
        )
        res = await simulator.simulate(req)
        return QuoteResponse(
            from_token=req.from_token,
            to_token=req.to_token,
            tokens_received=res.tokens_received,
            decimals=res.decimals,
            has_quote=res.has_quote,
        )

    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SimulationUnavailableError as exc:
        raise HTTPException(
            status_code=502,
            detail={"error": "simulation_unavailable", "detail": str(exc)},
        ) from exc
    except MalformedSimulationResultError as exc:
        raise HTTPException(status_code=500, detail=f"Malformed simulation result: {exc}") from exc
