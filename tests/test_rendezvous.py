import threading
import time

import pytest

from rtcbridge.errors import EngineNegotiationFailure, NegotiationTimeout
from rtcbridge.rtc.rendezvous import CandidateChannel, Rendezvous
from rtcbridge.rtc.webrtc import IceCandidate


def test_rendezvous_completes_once() -> None:
    rendezvous: Rendezvous[str] = Rendezvous("offer")

    assert rendezvous.resolve("first") is True
    assert rendezvous.resolve("second") is False
    assert rendezvous.reject(EngineNegotiationFailure("late")) is False
    assert rendezvous.wait(0.01) == "first"


def test_rejected_rendezvous_raises_stored_error() -> None:
    rendezvous: Rendezvous[str] = Rendezvous("answer")
    rendezvous.reject(EngineNegotiationFailure("no answer"))

    assert rendezvous.resolve("stray") is False
    with pytest.raises(EngineNegotiationFailure):
        rendezvous.wait(0.01)


def test_wait_times_out() -> None:
    rendezvous: Rendezvous[str] = Rendezvous("offer")

    with pytest.raises(NegotiationTimeout):
        rendezvous.wait(0.02)
    with pytest.raises(RuntimeError):
        rendezvous.result()


def test_resolve_from_another_thread_wakes_waiter() -> None:
    rendezvous: Rendezvous[str] = Rendezvous("offer")
    timer = threading.Timer(0.05, rendezvous.resolve, args=("from-engine",))
    timer.start()
    try:
        assert rendezvous.wait(2.0) == "from-engine"
    finally:
        timer.cancel()


def test_done_callbacks_run_once() -> None:
    calls = []
    rendezvous: Rendezvous[int] = Rendezvous()
    rendezvous.add_done_callback(lambda item: calls.append(("early", item.result())))

    rendezvous.resolve(1)
    rendezvous.resolve(2)
    rendezvous.add_done_callback(lambda item: calls.append(("late", item.result())))

    assert calls == [("early", 1), ("late", 1)]
    assert rendezvous.done


def test_gather_stops_at_max_items() -> None:
    channel = CandidateChannel()
    for index in range(5):
        channel.put(IceCandidate(0, f"candidate:{index}"))

    gathered = channel.gather(2, 1.0)

    assert [item.candidate_text for item in gathered] == ["candidate:0", "candidate:1"]


def test_gather_stops_after_quiescence() -> None:
    channel = CandidateChannel()
    channel.put(IceCandidate(0, "candidate:only"))

    started = time.monotonic()
    gathered = channel.gather(16, 0.05)

    assert len(gathered) == 1
    assert time.monotonic() - started >= 0.04


def test_gather_collects_candidates_from_producer_threads() -> None:
    channel = CandidateChannel()

    def _produce(mline: int) -> None:
        for index in range(3):
            channel.put(IceCandidate(mline, f"candidate:{mline}-{index}"))

    producers = [threading.Thread(target=_produce, args=(mline,)) for mline in range(2)]
    for producer in producers:
        producer.start()
    for producer in producers:
        producer.join()

    gathered = channel.gather(16, 0.05)

    assert len(gathered) == 6
    assert [item.candidate_text for item in gathered if item.media_line_index == 0] == [
        "candidate:0-0",
        "candidate:0-1",
        "candidate:0-2",
    ]


def test_closed_channel_drops_candidates() -> None:
    channel = CandidateChannel()
    channel.close()

    assert channel.put(IceCandidate(0, "candidate:late")) is False
    assert channel.gather(16, 5.0) == []
