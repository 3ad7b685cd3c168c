import logging

from farmeely.logging_setup import TRACE_ID_CTX, GatewayKeyFilter, TraceIdFilter


def _record(msg):
    return logging.LogRecord("farmeely", logging.INFO, __file__, 1, msg, None, None)


def test_gateway_keys_are_masked():
    record = _record("calling paystack with sk_live_abc123XYZ and pk_test_999")
    GatewayKeyFilter().filter(record)
    assert record.msg == "calling paystack with sk_live_*** and pk_test_***"


def test_trace_id_attached():
    token = TRACE_ID_CTX.set("trace-42")
    try:
        record = _record("hello")
        TraceIdFilter().filter(record)
        assert record.trace_id == "trace-42"
    finally:
        TRACE_ID_CTX.reset(token)


async def test_responses_carry_trace_id(client):
    resp = await client.get("/health", headers={"x-trace-id": "abc"})
    assert resp.headers["X-Trace-Id"] == "abc"
    assert (await client.get("/ready")).json() == {"status": "ready"}
