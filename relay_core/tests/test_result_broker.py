import json
import threading
import time

import pytest

from relay_core.broker import QueueSink, ResultBroker, SubscriptionFilter, encode_sse
from relay_core.broker import result_broker as broker_module
from relay_core.broker.events import ConnectedEvent, HeartbeatEvent, ResultEvent
from relay_core.domain.exceptions import DeliveryError


class ListSink:
    def __init__(self):
        self.frames = []
        self.closed = False

    def send(self, frame):
        self.frames.append(frame)

    def close(self):
        self.closed = True

    def events(self):
        return [json.loads(f[len("data: "):]) for f in self.frames]


class FlakySink(ListSink):
    """前 ok_sends 次写入成功，之后抛异常。"""

    def __init__(self, ok_sends=1):
        super().__init__()
        self.ok_sends = ok_sends

    def send(self, frame):
        if len(self.frames) >= self.ok_sends:
            raise ConnectionResetError("client went away")
        super().send(frame)


class BlockingSink(ListSink):
    """send 一直卡住，直到 release 被置位。"""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def send(self, frame):
        self.entered.set()
        self.release.wait(5)
        super().send(frame)


def test_sse_frame_format():
    frame = encode_sse(HeartbeatEvent(timestamp="2024-01-01T00:00:00Z"))
    assert frame == 'data: {"type": "ping", "timestamp": "2024-01-01T00:00:00Z"}\n\n'


def test_subscribe_sends_connected_event():
    broker = ResultBroker()
    sink = ListSink()
    sub_id = broker.subscribe({"chatId": "42"}, sink)
    assert broker.flush()
    assert sub_id.startswith("llm_stream_")
    events = sink.events()
    assert events[0]["type"] == "connected"
    assert events[0]["clientId"] == sub_id
    assert events[0]["filters"] == {"chatId": "42"}
    assert broker.client_count() == 1


def test_connected_is_first_even_with_concurrent_publish(monkeypatch):
    broker = ResultBroker()
    sink = ListSink()
    real_encode = broker_module.encode_sse

    def encode_and_publish(event):
        # 在 connected 编码期间插入一次发布
        if isinstance(event, ConnectedEvent):
            broker.publish_result({"id": "early"})
        return real_encode(event)

    monkeypatch.setattr(broker_module, "encode_sse", encode_and_publish)
    broker.subscribe({}, sink)
    broker.publish_result({"id": "later"})
    assert broker.flush()

    types = [e["type"] for e in sink.events()]
    assert types[0] == "connected"
    assert [e["data"]["id"] for e in sink.events() if e["type"] == "llm_result"] == ["later"]


def test_filter_matching_on_chat_id():
    broker = ResultBroker()
    filtered, everything = ListSink(), ListSink()
    broker.subscribe({"chatId": "42"}, filtered)
    broker.subscribe({}, everything)

    broker.publish_result({"id": "r1", "chatId": "42", "response": "a"})
    broker.publish_result({"id": "r2", "chatId": "7", "response": "b"})
    assert broker.flush()

    got = [e["data"]["id"] for e in filtered.events() if e["type"] == "llm_result"]
    assert got == ["r1"]
    got = [e["data"]["id"] for e in everything.events() if e["type"] == "llm_result"]
    assert got == ["r1", "r2"]


def test_filter_compares_as_strings():
    flt = SubscriptionFilter.from_mapping({"chatId": 42, "sessionId": ""})
    assert flt.session_id is None
    assert flt.matches({"chatId": "42"})
    assert flt.matches({"chatId": 42})
    assert not flt.matches({"chatId": "7"})
    assert not flt.matches({})


def test_failing_sink_does_not_block_others():
    broker = ResultBroker()
    bad, good = FlakySink(ok_sends=1), ListSink()
    bad_id = broker.subscribe({"chatId": "1"}, bad)
    broker.subscribe({"chatId": "1"}, good)

    delivered = broker.publish_result({"id": "r1", "chatId": "1"})
    assert broker.flush()

    assert delivered == 2
    assert [e["type"] for e in good.events()] == ["connected", "llm_result"]
    assert broker.get_subscription(bad_id) is None
    assert bad.closed is True
    assert broker.client_count() == 1


def test_stuck_sink_does_not_stall_publish():
    broker = ResultBroker()
    stuck, good = BlockingSink(), ListSink()
    broker.subscribe({}, stuck)
    good_id = broker.subscribe({}, good)
    assert stuck.entered.wait(1)

    try:
        started = time.monotonic()
        assert broker.publish_result({"id": "r1"}) == 2
        assert broker.heartbeat() == 2
        assert time.monotonic() - started < 0.5

        assert broker.get_subscription(good_id).flush()
        assert [e["type"] for e in good.events()] == ["connected", "llm_result", "ping"]
    finally:
        stuck.release.set()


def test_overflowing_queue_closes_subscription():
    broker = ResultBroker(queue_size=1)
    stuck, good = BlockingSink(), ListSink()
    stuck_id = broker.subscribe({}, stuck)
    broker.subscribe({}, good)
    assert stuck.entered.wait(1)

    try:
        assert broker.publish_result({"id": "r1"}) == 2
        assert broker.get_subscription(stuck_id) is not None
        # stuck 的队列已满，下一次发布溢出并被移除
        assert broker.publish_result({"id": "r2"}) == 1
        assert broker.get_subscription(stuck_id) is None
        assert stuck.closed is True
    finally:
        stuck.release.set()


def test_heartbeat_reaches_all_and_drops_dead():
    broker = ResultBroker()
    alive, dead = ListSink(), FlakySink(ok_sends=1)
    broker.subscribe({"chatId": "1"}, alive)
    broker.subscribe({}, dead)

    assert broker.heartbeat() == 2
    assert broker.flush()
    assert alive.events()[-1]["type"] == "ping"
    assert broker.client_count() == 1


def test_result_event_shape():
    wire = ResultEvent(payload={"id": "r1"}, timestamp="t").to_wire()
    assert wire == {"type": "llm_result", "data": {"id": "r1"}, "timestamp": "t"}


def test_unsubscribe_is_idempotent():
    broker = ResultBroker()
    sink = ListSink()
    sub_id = broker.subscribe({}, sink)
    assert broker.unsubscribe(sub_id) is True
    assert broker.unsubscribe(sub_id) is False
    assert broker.unsubscribe("llm_stream_unknown") is False
    assert sink.closed is True
    assert broker.publish_result({"id": "r1"}) == 0


def test_last_delivery_tracks_clock():
    now = [100.0]
    broker = ResultBroker(clock=lambda: now[0])
    sub_id = broker.subscribe({}, ListSink())
    assert broker.flush()
    assert broker.get_subscription(sub_id).last_delivery == 100.0
    now[0] = 150.0
    broker.heartbeat()
    assert broker.flush()
    assert broker.get_subscription(sub_id).last_delivery == 150.0


def test_queue_sink_preserves_order_and_finishes_after_close():
    sink = QueueSink(maxsize=10)
    sink.send("a")
    sink.send("b")
    sink.close()
    assert list(sink.frames(poll_interval=0.01)) == ["a", "b"]
    with pytest.raises(DeliveryError):
        sink.send("c")


def test_queue_sink_full_rejects():
    sink = QueueSink(maxsize=1, put_timeout=0.01)
    sink.send("a")
    with pytest.raises(DeliveryError) as exc:
        sink.send("b")
    assert exc.value.code == "SINK_FULL"
