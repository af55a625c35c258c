import asyncio

import pytest
from web3 import Web3
from web3.exceptions import Web3RPCError

from conftest import DAI, ORACLE, USDC, WBTC, WETH, FakeSimulator, FakeTxService, make_price_log, unrelated_log
from config import DEFAULT_PRICE_REQUESTED_TOPIC
from core.domain.enums.tx_enums import SubmissionStatus
from core.domain.schemas.onchain_types import PriceRequest, QuoteResult
from core.services.exceptions import SimulationUnavailableError, TransactionRevertedError
from core.use_cases.price_relay_usecase import BatchContext, PriceRelayUseCase


def _use_case(w3, simulator=None, tx=None, **kw) -> PriceRelayUseCase:
    return PriceRelayUseCase(
        simulator=simulator or FakeSimulator(),
        tx_service=tx or FakeTxService(),
        dest_w3=w3,
        topic0=DEFAULT_PRICE_REQUESTED_TOPIC,
        **kw,
    )


def _pair(a: str, b: str) -> str:
    return f"{a.lower()}:{b.lower()}"


class TestRelayLogs:
    @pytest.mark.asyncio
    async def test_single_request_submits_price_at_current_nonce(self, offline_w3):
        tx = FakeTxService(base_nonce=7, gas_price=150)
        uc = _use_case(offline_w3, tx=tx)

        (out,) = await uc.relay_logs([make_price_log(USDC, WETH)])

        assert out.status == SubmissionStatus.SUBMITTED
        assert out.nonce == 7
        assert out.tokens_received == 1_000_000
        assert out.decimals == 6
        assert out.tx_hash == tx.sent[0]["tx_hash"]

        (sent,) = tx.sent
        assert sent["nonce"] == 7
        assert sent["gas_price_wei"] == 150
        assert sent["fn"].address == ORACLE
        assert sent["fn"].fn_name == "submitPrice"
        assert tuple(sent["fn"].args) == (USDC, WETH, 1_000_000, 6)

    @pytest.mark.asyncio
    async def test_no_matching_logs_does_nothing(self, offline_w3):
        sim, tx = FakeSimulator(), FakeTxService()
        uc = _use_case(offline_w3, simulator=sim, tx=tx)

        assert await uc.relay_logs([unrelated_log()]) == []
        assert await uc.relay_logs([]) == []
        assert tx.count_reads == 0
        assert sim.calls == []

    @pytest.mark.asyncio
    async def test_duplicate_pairs_are_relayed_once(self, offline_w3):
        sim, tx = FakeSimulator(), FakeTxService()
        uc = _use_case(offline_w3, simulator=sim, tx=tx)
        logs = [
            make_price_log(USDC, WETH),
            make_price_log(USDC, WETH),
            make_price_log(WETH, USDC),
            make_price_log(USDC.lower(), WETH.lower(), oracle=DAI),
        ]

        outs = await uc.relay_logs(logs)

        assert [o.status for o in outs] == [
            SubmissionStatus.SUBMITTED,
            SubmissionStatus.DUPLICATE,
            SubmissionStatus.SUBMITTED,
            SubmissionStatus.DUPLICATE,
        ]
        assert [r.pair_key for r in sim.calls] == [_pair(USDC, WETH), _pair(WETH, USDC)]
        assert [s["nonce"] for s in tx.sent] == [7, 8]
        assert outs[1].nonce is None
        assert outs[1].tx_hash is None

    @pytest.mark.asyncio
    async def test_nonces_are_consecutive_with_one_count_read(self, offline_w3):
        tx = FakeTxService(base_nonce=100)
        uc = _use_case(offline_w3, tx=tx)
        logs = [make_price_log(USDC, WETH), make_price_log(WBTC, USDC), make_price_log(DAI, WETH)]

        outs = await uc.relay_logs(logs)

        assert [o.nonce for o in outs] == [100, 101, 102]
        assert [s["nonce"] for s in tx.sent] == [100, 101, 102]
        assert tx.count_reads == 1

    @pytest.mark.asyncio
    async def test_no_quote_is_submitted_with_zero_amount(self, offline_w3):
        sim = FakeSimulator(quotes={_pair(USDC, WBTC): QuoteResult.no_quote()})
        tx = FakeTxService()
        uc = _use_case(offline_w3, simulator=sim, tx=tx)

        (out,) = await uc.relay_logs([make_price_log(USDC, WBTC)])

        assert out.status == SubmissionStatus.NO_QUOTE
        assert out.tokens_received == 0
        assert out.decimals is None
        assert out.nonce == 7
        assert tuple(tx.sent[0]["fn"].args) == (USDC, WBTC, 0, 0)

    @pytest.mark.asyncio
    async def test_each_request_answers_its_own_oracle(self, offline_w3):
        tx = FakeTxService()
        uc = _use_case(offline_w3, tx=tx)

        await uc.relay_logs([make_price_log(USDC, WETH), make_price_log(DAI, WETH, oracle=DAI)])

        assert [s["fn"].address for s in tx.sent] == [ORACLE, DAI]


class TestFailureHandling:
    @pytest.mark.asyncio
    async def test_simulation_failure_is_isolated_and_keeps_nonce(self, offline_w3):
        sim = FakeSimulator(quotes={_pair(WBTC, USDC): SimulationUnavailableError("rpc down")})
        tx = FakeTxService(base_nonce=3)
        uc = _use_case(offline_w3, simulator=sim, tx=tx)

        outs = await uc.relay_logs(
            [make_price_log(USDC, WETH), make_price_log(WBTC, USDC), make_price_log(DAI, WETH)]
        )

        assert [o.status for o in outs] == [
            SubmissionStatus.SUBMITTED,
            SubmissionStatus.FAILED,
            SubmissionStatus.SUBMITTED,
        ]
        assert "rpc down" in outs[1].error
        assert outs[1].nonce is None
        assert [s["nonce"] for s in tx.sent] == [3, 4]

    @pytest.mark.asyncio
    async def test_send_failure_does_not_consume_nonce(self, offline_w3):
        tx = FakeTxService(base_nonce=10, fail_on={0: Web3RPCError("replacement transaction underpriced")})
        uc = _use_case(offline_w3, tx=tx)

        outs = await uc.relay_logs([make_price_log(USDC, WETH), make_price_log(DAI, WETH)])

        assert outs[0].status == SubmissionStatus.FAILED
        assert outs[0].tokens_received == 1_000_000
        assert outs[1].status == SubmissionStatus.SUBMITTED
        assert outs[1].nonce == 10

    @pytest.mark.asyncio
    async def test_transport_failure_is_isolated(self, offline_w3):
        tx = FakeTxService(base_nonce=10, fail_on={0: ConnectionResetError("peer reset")})
        uc = _use_case(offline_w3, tx=tx)

        outs = await uc.relay_logs([make_price_log(USDC, WETH), make_price_log(DAI, WETH)])

        assert [o.status for o in outs] == [SubmissionStatus.FAILED, SubmissionStatus.SUBMITTED]
        assert outs[1].nonce == 10

    @pytest.mark.asyncio
    async def test_programming_error_propagates(self, offline_w3):
        sim = FakeSimulator(quotes={_pair(WBTC, USDC): TypeError("unsupported operand")})
        tx = FakeTxService()
        uc = _use_case(offline_w3, simulator=sim, tx=tx)

        with pytest.raises(TypeError):
            await uc.relay_logs([make_price_log(USDC, WETH), make_price_log(WBTC, USDC)])

        assert [s["nonce"] for s in tx.sent] == [7]

    @pytest.mark.asyncio
    async def test_failed_pair_is_not_retried_in_same_batch(self, offline_w3):
        sim = FakeSimulator(quotes={_pair(USDC, WETH): SimulationUnavailableError("down")})
        uc = _use_case(offline_w3, simulator=sim)

        outs = await uc.relay_logs([make_price_log(USDC, WETH), make_price_log(USDC, WETH)])

        assert [o.status for o in outs] == [SubmissionStatus.FAILED, SubmissionStatus.DUPLICATE]
        assert len(sim.calls) == 1

    @pytest.mark.asyncio
    async def test_stop_on_error_aborts_rest_of_batch(self, offline_w3):
        sim = FakeSimulator(quotes={_pair(WBTC, USDC): SimulationUnavailableError("rpc down")})
        tx = FakeTxService()
        uc = _use_case(offline_w3, simulator=sim, tx=tx, stop_on_error=True)

        with pytest.raises(SimulationUnavailableError):
            await uc.relay_logs(
                [make_price_log(USDC, WETH), make_price_log(WBTC, USDC), make_price_log(DAI, WETH)]
            )

        assert [s["nonce"] for s in tx.sent] == [7]
        assert [r.pair_key for r in sim.calls] == [_pair(USDC, WETH), _pair(WBTC, USDC)]

    @pytest.mark.asyncio
    async def test_reverted_receipt_keeps_spent_nonce(self, offline_w3):
        def _revert(tx_hash, nonce):
            return TransactionRevertedError(tx_hash=tx_hash, receipt={"status": 0}, msg="reverted", nonce=nonce)

        tx = FakeTxService(base_nonce=5, confirm_error=_revert)
        uc = _use_case(offline_w3, tx=tx, wait_for_receipt=True)

        outs = await uc.relay_logs([make_price_log(USDC, WETH), make_price_log(DAI, WETH)])

        assert [o.status for o in outs] == [SubmissionStatus.FAILED, SubmissionStatus.FAILED]
        assert [o.nonce for o in outs] == [5, 6]
        assert outs[0].tx_hash == tx.sent[0]["tx_hash"]
        assert tx.confirmed == [s["tx_hash"] for s in tx.sent]

    @pytest.mark.asyncio
    async def test_receipts_not_awaited_by_default(self, offline_w3):
        tx = FakeTxService()
        uc = _use_case(offline_w3, tx=tx)

        await uc.relay_logs([make_price_log(USDC, WETH)])
        assert tx.confirmed == []


class TestRelayBatches:
    @pytest.mark.asyncio
    async def test_keyed_request_uses_key_overload(self, offline_w3):
        tx = FakeTxService()
        uc = _use_case(offline_w3, tx=tx)
        key = "0x" + "ab" * 32
        req = PriceRequest(from_token=USDC, to_token=WETH, oracle_address=ORACLE, request_key=key)

        (out,) = await uc.relay([req])

        assert out.request_key == key
        fn = tx.sent[0]["fn"]
        assert tuple(fn.args) == (Web3.to_bytes(hexstr=key), 1_000_000, 6)

    @pytest.mark.asyncio
    async def test_keyed_requests_for_same_pair_are_each_answered(self, offline_w3):
        tx = FakeTxService()
        uc = _use_case(offline_w3, tx=tx)
        key_a, key_b = "0x" + "aa" * 32, "0x" + "bb" * 32
        reqs = [
            PriceRequest(from_token=USDC, to_token=WETH, oracle_address=ORACLE, request_key=key_a),
            PriceRequest(from_token=USDC, to_token=WETH, oracle_address=ORACLE, request_key=key_b),
            PriceRequest(from_token=USDC, to_token=WETH, oracle_address=ORACLE, request_key=key_a),
        ]

        outs = await uc.relay(reqs)

        assert [(o.request_key, o.status) for o in outs] == [
            (key_a, SubmissionStatus.SUBMITTED),
            (key_b, SubmissionStatus.SUBMITTED),
            (key_a, SubmissionStatus.DUPLICATE),
        ]
        assert [tuple(s["fn"].args)[0] for s in tx.sent] == [
            Web3.to_bytes(hexstr=key_a),
            Web3.to_bytes(hexstr=key_b),
        ]
        assert [s["nonce"] for s in tx.sent] == [7, 8]

    @pytest.mark.asyncio
    async def test_keyed_and_plain_requests_do_not_shadow_each_other(self, offline_w3):
        tx = FakeTxService()
        uc = _use_case(offline_w3, tx=tx)
        key = "0x" + "cd" * 32
        reqs = [
            PriceRequest(from_token=USDC, to_token=WETH, oracle_address=ORACLE),
            PriceRequest(from_token=USDC, to_token=WETH, oracle_address=ORACLE, request_key=key),
            PriceRequest(from_token=USDC, to_token=WETH, oracle_address=ORACLE),
        ]

        outs = await uc.relay(reqs)

        assert [o.status for o in outs] == [
            SubmissionStatus.SUBMITTED,
            SubmissionStatus.SUBMITTED,
            SubmissionStatus.DUPLICATE,
        ]
        assert len(tx.sent) == 2

    @pytest.mark.asyncio
    async def test_dedup_state_does_not_leak_between_batches(self, offline_w3):
        tx = FakeTxService()
        uc = _use_case(offline_w3, tx=tx)

        first = await uc.relay_logs([make_price_log(USDC, WETH)])
        second = await uc.relay_logs([make_price_log(USDC, WETH)])

        assert first[0].status == SubmissionStatus.SUBMITTED
        assert second[0].status == SubmissionStatus.SUBMITTED
        assert [s["nonce"] for s in tx.sent] == [7, 8]
        assert tx.count_reads == 2

    @pytest.mark.asyncio
    async def test_concurrent_batches_do_not_share_nonces(self, offline_w3):
        tx = FakeTxService(base_nonce=0)
        uc = _use_case(offline_w3, tx=tx)

        a, b = await asyncio.gather(
            uc.relay_logs([make_price_log(USDC, WETH), make_price_log(DAI, WETH)]),
            uc.relay_logs([make_price_log(WBTC, USDC), make_price_log(WETH, DAI)]),
        )

        nonces = [o.nonce for o in a + b]
        assert sorted(nonces) == [0, 1, 2, 3]
        assert [s["nonce"] for s in tx.sent] == [0, 1, 2, 3]


class TestBatchContext:
    def test_claim_once_per_key(self):
        ctx = BatchContext(next_nonce=0)
        assert ctx.claim("a:b")
        assert not ctx.claim("a:b")
        assert ctx.claim("b:a")

    def test_commit_advances_nonce_and_records(self):
        ctx = BatchContext(next_nonce=41)
        assert ctx.commit("a:b") == 41
        assert ctx.commit("c:d") == 42
        assert ctx.next_nonce == 43
        assert [(r.dedup_key, r.nonce) for r in ctx.records] == [("a:b", 41), ("c:d", 42)]
