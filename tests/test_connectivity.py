"""
Connectivity observer and health probe tests
"""

import httpx
import pytest

from tierzero.connectivity import ConnectivityObserver, ConnectivityState, HealthProbe


@pytest.mark.asyncio
async def test_subscribers_receive_transitions_in_order():
    observer = ConnectivityObserver(ConnectivityState.ONLINE)
    channel = observer.subscribe()

    assert observer.publish(ConnectivityState.OFFLINE)
    assert not observer.publish("offline")
    assert observer.publish("online")

    assert channel.get_nowait() is ConnectivityState.OFFLINE
    assert channel.get_nowait() is ConnectivityState.ONLINE
    assert channel.empty()
    assert observer.online


@pytest.mark.asyncio
async def test_unsubscribed_channels_stop_receiving():
    observer = ConnectivityObserver()
    channel = observer.subscribe()
    observer.unsubscribe(channel)
    observer.unsubscribe(channel)
    observer.publish(ConnectivityState.OFFLINE)
    assert channel.empty()


def test_default_state_is_online():
    assert ConnectivityObserver().state is ConnectivityState.ONLINE


def test_unknown_state_is_rejected():
    with pytest.raises(ValueError):
        ConnectivityObserver().publish("flaky")


@pytest.mark.asyncio
async def test_health_probe_publishes_result():
    status = {"code": 503}

    def handler(request):
        assert request.url.path == "/api/health"
        return httpx.Response(status["code"])

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    observer = ConnectivityObserver()
    probe = HealthProbe(observer, "http://api.test/api/health", client=client)

    assert await probe.check() is ConnectivityState.OFFLINE
    assert observer.state is ConnectivityState.OFFLINE

    status["code"] = 200
    assert await probe.check() is ConnectivityState.ONLINE
    assert observer.online
    await client.aclose()


@pytest.mark.asyncio
async def test_health_probe_network_error_is_offline():
    def handler(request):
        raise httpx.ConnectTimeout("timeout", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    observer = ConnectivityObserver()
    probe = HealthProbe(observer, "http://api.test/api/health", client=client)
    assert await probe.check() is ConnectivityState.OFFLINE
    await client.aclose()


@pytest.mark.asyncio
async def test_health_probe_start_stop():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    observer = ConnectivityObserver()
    channel = observer.subscribe()
    probe = HealthProbe(observer, "http://api.test/api/health", interval=0.01, client=client)

    probe.start()
    assert await channel.get() is ConnectivityState.OFFLINE
    await probe.stop()
    await probe.stop()
    await client.aclose()
