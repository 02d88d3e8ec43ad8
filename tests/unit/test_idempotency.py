import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from paygate.core.exceptions import DatabaseError
from paygate.schemas.results import PaymentResult
from paygate.services.idempotency import IdempotencyGuard, SingleFlight
from paygate.services.ledger import InMemoryLedger


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_run(self):
        flights = SingleFlight()
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            return object()

        results = await asyncio.gather(*(flights.run("k", operation) for _ in range(5)))

        assert calls == 1
        assert all(result is results[0] for result in results)
        assert not flights.in_flight("k")

    @pytest.mark.asyncio
    async def test_different_keys_run_independently(self):
        flights = SingleFlight()
        seen = []

        async def operation(key):
            seen.append(key)
            await asyncio.sleep(0.01)
            return key

        results = await asyncio.gather(
            flights.run("a", lambda: operation("a")),
            flights.run("b", lambda: operation("b")),
        )

        assert results == ["a", "b"]
        assert sorted(seen) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_waiter_takes_over_when_leader_cancelled(self):
        flights = SingleFlight()
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            return calls

        leader = asyncio.create_task(flights.run("k", operation))
        await asyncio.sleep(0)
        follower = asyncio.create_task(flights.run("k", operation))
        await asyncio.sleep(0.01)

        leader.cancel()
        with pytest.raises(asyncio.CancelledError):
            await leader

        assert await follower == 2
        assert calls == 2
        assert not flights.in_flight("k")

    @pytest.mark.asyncio
    async def test_failure_raised_only_to_caller_that_hit_it(self):
        flights = SingleFlight()
        attempts = []

        async def operation():
            attempts.append(len(attempts))
            await asyncio.sleep(0.01)
            if len(attempts) == 1:
                raise RuntimeError("backend exploded")
            return "ok"

        results = await asyncio.gather(
            flights.run("k", operation),
            flights.run("k", operation),
            return_exceptions=True,
        )

        assert isinstance(results[0], RuntimeError)
        assert results[1] == "ok"
        assert len(attempts) == 2


class TestIdempotencyGuard:
    @pytest.mark.asyncio
    async def test_terminal_result_recorded_and_replayed(self):
        guard = IdempotencyGuard()
        operation = AsyncMock(return_value=PaymentResult.succeeded("tx_1", "p1"))

        first = await guard.run("p1", operation)
        second = await guard.run("p1", operation)

        assert first == second
        assert second.transaction_id == "tx_1"
        operation.assert_awaited_once()
        assert len(guard.ledger) == 1

    @pytest.mark.asyncio
    async def test_decline_is_recorded(self):
        guard = IdempotencyGuard()
        declined = PaymentResult.failed("Payment declined", "payment_declined", "p1")
        operation = AsyncMock(return_value=declined)

        await guard.run("p1", operation)
        replay = await guard.run("p1", operation)

        assert replay == declined
        operation.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error_code", ["timeout", "backend_error", "validation_error", "configuration_error"])
    async def test_non_terminal_result_not_recorded(self, error_code):
        guard = IdempotencyGuard()
        failed = PaymentResult.failed("failed", error_code, "p1")
        operation = AsyncMock(side_effect=[failed, PaymentResult.succeeded("tx_1", "p1")])

        first = await guard.run("p1", operation)
        second = await guard.run("p1", operation)

        assert first.error_code == error_code
        assert second.success
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_in_flight_while_running(self):
        guard = IdempotencyGuard()
        started = asyncio.Event()
        release = asyncio.Event()

        async def operation():
            started.set()
            await release.wait()
            return PaymentResult.succeeded("tx_1", "p1")

        task = asyncio.create_task(guard.run("p1", operation))
        await started.wait()

        assert guard.in_flight("p1")
        release.set()
        await task
        assert not guard.in_flight("p1")

    @pytest.mark.asyncio
    async def test_ledger_write_failure_still_returns_result(self):
        ledger = InMemoryLedger()
        ledger.put = AsyncMock(side_effect=DatabaseError("write failed", operation="insert_ledger_entry"))
        guard = IdempotencyGuard(ledger)

        with patch("paygate.services.idempotency.error_monitor") as mock_monitor:
            result = await guard.run("p1", AsyncMock(return_value=PaymentResult.succeeded("tx_1", "p1")))

        assert result.success
        mock_monitor.log_error.assert_called_once()
        assert mock_monitor.log_error.call_args.args[1]["idempotency_key"] == "p1"

    @pytest.mark.asyncio
    async def test_ledger_read_failure_propagates(self):
        ledger = InMemoryLedger()
        ledger.get = AsyncMock(side_effect=DatabaseError("read failed", operation="find_ledger_entry"))
        guard = IdempotencyGuard(ledger)
        operation = AsyncMock()

        with pytest.raises(DatabaseError):
            await guard.run("p1", operation)

        operation.assert_not_awaited()
        assert not guard.in_flight("p1")
