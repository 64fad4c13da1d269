from vto.domain.events import JobProgressUpdated, ProbeFinished
from vto.domain.models import ProgressSnapshot
from vto.infrastructure.event_bus import EventBus

def test_publish_reaches_subscribers_of_that_type():
    bus = EventBus()
    received = []
    bus.subscribe(ProbeFinished, received.append)

    bus.publish(ProbeFinished(job_id="a", duration_ms=1000))
    bus.publish(JobProgressUpdated(job_id="a", snapshot=ProgressSnapshot(fraction=0.1)))

    assert len(received) == 1
    assert received[0].duration_ms == 1000

def test_publish_without_subscribers():
    EventBus().publish(ProbeFinished(job_id="a"))

def test_multiple_subscribers_in_order():
    bus = EventBus()
    calls = []
    bus.subscribe(ProbeFinished, lambda e: calls.append("first"))
    bus.subscribe(ProbeFinished, lambda e: calls.append("second"))

    bus.publish(ProbeFinished(job_id="a"))

    assert calls == ["first", "second"]
