from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes

from core.domain.schemas.onchain_types import PriceRequest, RawLog
from core.services.exceptions import InvalidInputError, MalformedEventError

# event input name -> PriceRequest field
_FIELD_BY_INPUT = {
    "fromToken": "from_token",
    "toToken": "to_token",
    "requestKey": "request_key",
    "amount": "amount",
}


def _as_raw_log(log: Union[RawLog, Mapping[str, Any]]) -> RawLog:
    if isinstance(log, RawLog):
        return log
    return RawLog.model_validate(dict(log))


def decode_event_args(log: RawLog, event_abi: dict) -> Dict[str, Any]:
    """
    ABI-decodes one log against an event ABI entry.

    Indexed inputs come from topics[1:] (one word each), the rest from `data`.
    Raises MalformedEventError on any shape mismatch.
    """
    inputs = event_abi.get("inputs") or []
    indexed = [i for i in inputs if i.get("indexed")]
    plain = [i for i in inputs if not i.get("indexed")]

    topics = log.topics[1:]
    if len(topics) != len(indexed):
        raise MalformedEventError(
            f"{event_abi.get('name')}: expected {len(indexed)} indexed topics, got {len(topics)}",
            log=log.model_dump(),
        )

    args: Dict[str, Any] = {}
    try:
        for inp, topic in zip(indexed, topics):
            (args[inp["name"]],) = decode([inp["type"]], bytes(HexBytes(topic)))

        values = decode([i["type"] for i in plain], bytes(HexBytes(log.data or "0x")))
        for inp, value in zip(plain, values):
            args[inp["name"]] = value
    except (DecodingError, ValueError, TypeError) as exc:
        raise MalformedEventError(
            f"{event_abi.get('name')}: failed to decode log: {exc}",
            log=log.model_dump(),
        ) from exc

    return args


def decode_requests(
    logs: Iterable[Union[RawLog, Mapping[str, Any]]],
    *,
    topic0: str,
    event_abi: dict,
) -> List[PriceRequest]:
    """
    Extracts PriceRequested events from a batch of logs.

    Logs whose first topic is not `topic0` are skipped silently (most logs of a
    transaction are unrelated). A matching log that cannot be decoded raises
    MalformedEventError.
    """
    wanted = (topic0 or "").lower()
    out: List[PriceRequest] = []

    for raw in logs:
        lg = _as_raw_log(raw)
        if lg.topic0() != wanted:
            continue

        args = decode_event_args(lg, event_abi)
        fields: Dict[str, Optional[Any]] = {
            field: args[name] for name, field in _FIELD_BY_INPUT.items() if name in args
        }

        try:
            out.append(PriceRequest(oracle_address=lg.address, **fields))
        except (InvalidInputError, ValueError) as exc:
            raise MalformedEventError(
                f"{event_abi.get('name')}: decoded values are not a valid request: {exc}",
                log=lg.model_dump(),
            ) from exc

    return out
