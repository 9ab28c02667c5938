from __future__ import annotations

import asyncio

from checkout.errors import ApiResponseError
from checkout.poller.client_poller import ClientPoller, PollerState


class FakeTime:
    """Виртуальное время: sleep только сдвигает часы"""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = 0

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps += 1
        self.now += seconds
        await asyncio.sleep(0)


class FakeCheckoutApi:
    def __init__(self, answers=None) -> None:
        self.answers = list(answers or [])
        self.created = []
        self.checks = 0

    async def create(self, product_id: str, amount: int, description: str) -> dict:
        self.created.append((product_id, amount, description))
        return {"invoiceId": "inv-1", "scanImage": "data:image/png;base64,AAAA"}

    async def check(self, invoice_id: str) -> dict:
        self.checks += 1
        answer = self.answers.pop(0) if self.answers else {"paid": False, "status": "PENDING"}
        if isinstance(answer, Exception):
            raise answer
        return answer


def make_poller(api: FakeCheckoutApi, fake_time: FakeTime, states: list, **kwargs) -> ClientPoller:
    return ClientPoller(
        api.create,
        api.check,
        interval=3.0,
        timeout=120.0,
        on_state=states.append,
        clock=fake_time.clock,
        sleep=fake_time.sleep,
        **kwargs,
    )


def test_poller_reaches_paid() -> None:
    api = FakeCheckoutApi([{"paid": False}, {"paid": False}, {"paid": True, "status": "PAID"}])
    fake_time = FakeTime()
    states = []
    poller = make_poller(api, fake_time, states)

    final = asyncio.run(poller.run("course-1", 50000, "Python"))

    assert final is PollerState.PAID
    assert states == [PollerState.CREATING, PollerState.AWAITING_PAYMENT, PollerState.PAID]
    assert api.created == [("course-1", 50000, "Python")]
    assert api.checks == 3
    assert poller.invoice_id == "inv-1"


def test_poller_times_out() -> None:
    api = FakeCheckoutApi()
    fake_time = FakeTime()
    states = []
    poller = make_poller(api, fake_time, states)

    final = asyncio.run(poller.run("course-1", 50000))

    assert final is PollerState.TIMED_OUT
    assert states[-1] is PollerState.TIMED_OUT
    assert api.checks == 39
    assert fake_time.now == 120.0


def test_transient_errors_are_tolerated() -> None:
    api = FakeCheckoutApi([
        ConnectionError("network blip"),
        ApiResponseError(502, "GATEWAY_INVOICE_FAILED", "retry"),
        {"paid": True},
    ])
    fake_time = FakeTime()
    states = []
    poller = make_poller(api, fake_time, states)

    final = asyncio.run(poller.run("course-1", 50000))

    assert final is PollerState.PAID
    assert PollerState.ERROR not in states


def test_repeated_failures_end_in_error() -> None:
    api = FakeCheckoutApi([ConnectionError("down")] * 5)
    fake_time = FakeTime()
    states = []
    poller = make_poller(api, fake_time, states, max_consecutive_errors=5)

    final = asyncio.run(poller.run("course-1", 50000))

    assert final is PollerState.ERROR
    assert api.checks == 5
    assert isinstance(poller.last_error, ConnectionError)


def test_error_counter_resets_after_success() -> None:
    api = FakeCheckoutApi([
        ConnectionError("down"),
        ConnectionError("down"),
        {"paid": False},
        ConnectionError("down"),
        ConnectionError("down"),
        {"paid": True},
    ])
    fake_time = FakeTime()
    poller = make_poller(api, fake_time, [], max_consecutive_errors=3)

    assert asyncio.run(poller.run("course-1", 50000)) is PollerState.PAID


def test_create_failure_ends_in_error() -> None:
    async def failing_create(product_id, amount, description):
        raise ApiResponseError(400, "INVALID_AMOUNT", "amount должен быть > 0")

    api = FakeCheckoutApi()
    states = []
    poller = ClientPoller(failing_create, api.check, on_state=states.append)

    final = asyncio.run(poller.run("course-1", 0))

    assert final is PollerState.ERROR
    assert states == [PollerState.CREATING, PollerState.ERROR]
    assert api.checks == 0


def test_cancel_stops_polling() -> None:
    api = FakeCheckoutApi()
    states = []
    poller = ClientPoller(api.create, api.check, interval=0.01, timeout=60, on_state=states.append)

    async def scenario():
        task = asyncio.create_task(poller.run("course-1", 50000))
        await asyncio.sleep(0.05)
        poller.cancel()
        final = await task
        checks_at_cancel = api.checks
        await asyncio.sleep(0.05)
        return final, checks_at_cancel

    final, checks_at_cancel = asyncio.run(scenario())

    assert final is PollerState.CANCELLED
    assert states[-1] is PollerState.CANCELLED
    assert api.checks == checks_at_cancel
    assert poller._task is None


def test_cancel_after_finish_keeps_final_state() -> None:
    api = FakeCheckoutApi([{"paid": True}])
    poller = make_poller(api, FakeTime(), [])

    asyncio.run(poller.run("course-1", 50000))
    poller.cancel()

    assert poller.state is PollerState.PAID


def test_cancelling_awaiting_task_propagates() -> None:
    api = FakeCheckoutApi()
    poller = ClientPoller(api.create, api.check, interval=0.01, timeout=60)

    async def scenario():
        task = asyncio.create_task(poller.run("course-1", 50000))
        await asyncio.sleep(0.05)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            outcome = "cancelled"
        else:
            outcome = "returned"
        checks_at_cancel = api.checks
        await asyncio.sleep(0.05)
        return outcome, task.cancelled(), checks_at_cancel

    outcome, task_cancelled, checks_at_cancel = asyncio.run(scenario())

    assert outcome == "cancelled"
    assert task_cancelled is True
    assert poller.state is PollerState.CANCELLED
    assert api.checks == checks_at_cancel
    assert poller._task is None
