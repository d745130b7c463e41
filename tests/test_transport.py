"""
HttpTransport routing and error mapping against httpx.MockTransport
"""

import json

import httpx
import pytest

from tierzero.errors import PayloadError, TransportError
from tierzero.models import QueueKind
from tierzero.transport import HttpTransport


def make_transport(handler):
    client = httpx.AsyncClient(base_url="http://api.test", transport=httpx.MockTransport(handler))
    return HttpTransport("http://api.test", client=client), client


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kind,payload,path,body",
    [
        (QueueKind.ANALYSIS, {"text": "hello"}, "/api/analyze", {"text": "hello"}),
        (QueueKind.REPORT, {"postId": 9, "reason": "spam"}, "/api/reports", {"postId": 9, "reason": "spam"}),
        (
            QueueKind.QUIZ_SUBMISSION,
            {"quizId": "q 1/2", "selectedAnswer": 3},
            "/api/quizzes/q%201%2F2/submit",
            {"selectedAnswer": 3},
        ),
    ],
)
async def test_routes(kind, payload, path, body):
    seen = []

    def handler(request: httpx.Request):
        seen.append((request.method, request.url.raw_path.decode(), json.loads(request.content)))
        return httpx.Response(201, json={"ok": True})

    transport, client = make_transport(handler)
    await transport.send(kind, payload)
    await client.aclose()
    assert seen == [("POST", path, body)]


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [500, 503, 408, 429])
async def test_retryable_statuses_raise_transport_error(status_code):
    transport, client = make_transport(lambda request: httpx.Response(status_code))
    with pytest.raises(TransportError):
        await transport.send(QueueKind.REPORT, {"postId": 1})
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [400, 404, 422])
async def test_client_errors_raise_payload_error(status_code):
    transport, client = make_transport(lambda request: httpx.Response(status_code, text="bad"))
    with pytest.raises(PayloadError):
        await transport.send(QueueKind.ANALYSIS, {"text": "x"})
    await client.aclose()


@pytest.mark.asyncio
async def test_network_failure_raises_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    transport, client = make_transport(handler)
    with pytest.raises(TransportError):
        await transport.send(QueueKind.ANALYSIS, {"text": "x"})
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"selectedAnswer": 1}, {"quizId": "", "selectedAnswer": 1}, {"quizId": "q1"}, ["q1"]])
async def test_malformed_quiz_submission(payload):
    calls = []
    transport, client = make_transport(lambda request: calls.append(request) or httpx.Response(200))
    with pytest.raises(PayloadError):
        await transport.send(QueueKind.QUIZ_SUBMISSION, payload)
    await client.aclose()
    assert calls == []


@pytest.mark.asyncio
async def test_borrowed_client_is_not_closed():
    transport, client = make_transport(lambda request: httpx.Response(200))
    await transport.aclose()
    assert not client.is_closed
    await client.aclose()
