from __future__ import annotations

import threading

from wildwatch_session.utils import EventHook


def test_emit_reaches_subscribers_until_unsubscribed() -> None:
    hook: EventHook[str] = EventHook()
    received: list[str] = []
    unsubscribe = hook.subscribe(received.append)

    hook.emit("renewed")
    unsubscribe()
    unsubscribe()
    hook.emit("ignored")

    assert received == ["renewed"]
    assert len(hook) == 0


def test_failing_listener_does_not_block_others() -> None:
    hook: EventHook[int] = EventHook()
    received: list[int] = []

    def broken(_: int) -> None:
        raise RuntimeError("listener crashed")

    hook.subscribe(broken)
    hook.subscribe(received.append)

    hook.emit(7)

    assert received == [7]


def test_len_waits_for_concurrent_subscription() -> None:
    hook: EventHook[str] = EventHook()
    hook.subscribe(lambda _: None)
    counts: list[int] = []

    with hook._lock:
        reader = threading.Thread(target=lambda: counts.append(len(hook)))
        reader.start()
        reader.join(timeout=0.1)
        assert reader.is_alive()
        hook._subscribers.append(lambda _: None)

    reader.join(timeout=5)
    assert counts == [2]
