from __future__ import annotations

import asyncio

import pytest
from aiohttp.test_utils import TestServer

from checkout.errors import ApiResponseError
from checkout.poller.api_client import CheckoutApiClient
from checkout.poller.client_poller import ClientPoller, PollerState
from checkout.services.identity import IdentityVerifier
from checkout.web.server import create_app


def serve(world, make_config, scenario):
    config = make_config()
    identity = IdentityVerifier(config.auth_token_secret)

    async def runner():
        app = create_app(
            config=config,
            identity=identity,
            invoice_service=world.invoice_service,
            payment_service=world.payments,
            granter=world.granter,
            notifications=world.notifications,
            publisher=world.publisher,
            users=world.users,
        )
        server = TestServer(app)
        await server.start_server()
        try:
            return await scenario(str(server.make_url("/")), identity)
        finally:
            await server.close()

    return asyncio.run(runner())


def test_poller_buys_course_over_http(world, make_config) -> None:
    states = []

    async def scenario(base_url, identity):
        api = CheckoutApiClient(base_url, identity.issue("user-1"))
        checks = 0

        async def check(invoice_id):
            nonlocal checks
            checks += 1
            if checks == 2:
                world.gateway.mark_paid("gw-new", 50000)
            return await api.check_invoice(invoice_id)

        poller = ClientPoller(api.create_invoice, check, interval=0.01, timeout=5, on_state=states.append)
        try:
            final = await poller.run("course-1", 50000, "Python")
        finally:
            await api.close()
        return final, poller.invoice, checks

    final, invoice, checks = serve(world, make_config, scenario)

    assert final is PollerState.PAID
    assert checks == 2
    assert invoice["scanImage"].startswith("data:image/png;base64,")
    assert states == [PollerState.CREATING, PollerState.AWAITING_PAYMENT, PollerState.PAID]
    assert world.entitlements.writes == 1
    assert len(world.notification_repo.for_user("user-1")) == 1


def test_api_client_raises_with_reason_code(world, make_config) -> None:
    async def scenario(base_url, identity):
        api = CheckoutApiClient(base_url, identity.issue("user-1"))
        try:
            await api.create_invoice("course-1", 0)
        finally:
            await api.close()

    with pytest.raises(ApiResponseError) as exc_info:
        serve(world, make_config, scenario)

    assert exc_info.value.status_code == 400
    assert exc_info.value.code == "INVALID_AMOUNT"
    assert exc_info.value.retryable is False


def test_api_client_gateway_error_is_retryable(world, make_config) -> None:
    world.gateway.fail_create = True

    async def scenario(base_url, identity):
        api = CheckoutApiClient(base_url, identity.issue("user-1"))
        try:
            await api.create_invoice("course-1", 50000)
        finally:
            await api.close()

    with pytest.raises(ApiResponseError) as exc_info:
        serve(world, make_config, scenario)

    assert exc_info.value.status_code == 502
    assert exc_info.value.retryable is True
