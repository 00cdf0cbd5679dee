"""Event merging and UID deduplication across sources."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from .ics_models import Event

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Merged event list plus the number of duplicates removed."""

    events: list[Event] = field(default_factory=list)
    duplicates_dropped: int = 0


class EventMerger:
    """Concatenates per-source event lists and removes repeated UIDs.

    Order is source declaration order, then within-source order. The first
    event seen for a UID wins; no sorting is applied.
    """

    def merge(self, per_source: Sequence[Sequence[Event]]) -> MergeResult:
        """Merge events from every source.

        Args:
            per_source: One event sequence per source, in configured order

        Returns:
            MergeResult with UID-unique events
        """
        result = MergeResult()
        seen: dict[str, Event] = {}

        for events in per_source:
            for event in events:
                first = seen.get(event.uid)
                if first is not None:
                    result.duplicates_dropped += 1
                    logger.debug(
                        "Dropping duplicate UID %s from %s (kept the one from %s)",
                        event.uid,
                        event.source_name,
                        first.source_name,
                    )
                    continue
                seen[event.uid] = event
                result.events.append(event)

        if result.duplicates_dropped:
            logger.info(
                "Merged %d events, dropped %d duplicates",
                len(result.events),
                result.duplicates_dropped,
            )
        return result


def merge_events(per_source: Sequence[Sequence[Event]]) -> MergeResult:
    """Merge per-source events into one UID-unique list (convenience function)."""
    return EventMerger().merge(per_source)
