"""
PolyQuote — Deterministic Replay
=================================
Feeds recorded (ts_ms, EventType, payload) tuples through the bus while a
ManualScheduler follows the recorded clock, so simulated latency timers fire
in the same order every run.

Events are replayed in timestamp order (stable for equal timestamps). Before
each event is published, every timer due at or before its timestamp fires.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from .core.bus import EventBus
from .core.events import EventType
from .core.scheduler import ManualScheduler

RecordedEvent = Tuple[int, EventType, Any]

logger = logging.getLogger("polyquote.replay")


def replay_events(bus: EventBus, scheduler: ManualScheduler,
                  events: Iterable[RecordedEvent],
                  drain_after_ms: Optional[int] = None) -> Dict:
    """
    Publish recorded events in time order, advancing the virtual clock first.

    drain_after_ms: once the last event is published, keep advancing the clock
    by this much so trailing placement/fill timers get a chance to fire.

    Returns counters for the run.
    """
    ordered = sorted(events, key=lambda e: e[0])
    published = 0
    timers_fired = 0

    for ts_ms, event_type, payload in ordered:
        if ts_ms < scheduler.time_ms():
            logger.warning(
                f"Event {event_type.value} at {ts_ms} is behind the clock "
                f"({scheduler.time_ms()}) — publishing without advancing"
            )
        else:
            timers_fired += scheduler.advance_to(ts_ms)
        bus.publish(event_type, payload)
        published += 1

    if drain_after_ms:
        timers_fired += scheduler.advance_to(scheduler.time_ms() + drain_after_ms)

    logger.info(
        f"Replay done: {published} events, {timers_fired} timers fired, "
        f"clock at {scheduler.time_ms()}ms"
    )
    return {
        "events": published,
        "timers_fired": timers_fired,
        "clock_ms": scheduler.time_ms(),
        "pending_timers": scheduler.pending_count,
    }
