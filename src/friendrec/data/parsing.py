"""
Text format of the activity stream, one record per line:

    Kind,itemId,userId,YYYY-MM-DD HH:MM:SS

Timestamps are UTC. Kinds other than Post/Comment/Like map to Other.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Tuple, Union

from src.friendrec.data.schema import ActivityEvent, ActivityKind
from src.friendrec.errors import ParseError

LOGGER = logging.getLogger("friendrec.parsing")

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

RawEvent = Tuple[str, int, int, int]


def parse_timestamp(text: str) -> int:
    dt = datetime.strptime(text.strip(), TIME_FORMAT).replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def format_timestamp(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime(TIME_FORMAT)


def event_from_tuple(raw: RawEvent) -> ActivityEvent:
    try:
        kind, item_id, user_id, event_time = raw
        return ActivityEvent(
            kind=ActivityKind.from_text(str(kind)),
            item_id=int(item_id),
            user_id=int(user_id),
            event_time=int(event_time),
        )
    except (TypeError, ValueError) as exc:
        raise ParseError(str(exc), line=repr(raw)) from exc


def parse_activity(line: str) -> ActivityEvent:
    parts = [p.strip() for p in line.split(",")]
    if len(parts) != 4:
        raise ParseError(f"expected 4 fields, got {len(parts)}", line=line)
    kind, item, user, ts = parts
    try:
        return ActivityEvent(
            kind=ActivityKind.from_text(kind),
            item_id=int(item),
            user_id=int(user),
            event_time=parse_timestamp(ts),
        )
    except ValueError as exc:
        raise ParseError(str(exc), line=line) from exc


def iter_activities(
    lines: Iterable[str],
    on_error=None,
) -> Iterator[ActivityEvent]:
    """
    Parse lines lazily, skipping blanks and malformed records.
    on_error(ParseError) is called for every skipped record.
    """
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            yield parse_activity(line)
        except ParseError as exc:
            LOGGER.warning("Skipping malformed activity at line %s: %s", lineno, exc)
            if on_error is not None:
                on_error(exc)


def read_activity_file(path: Union[str, Path], on_error=None) -> Iterator[ActivityEvent]:
    with open(path, "r", encoding="utf-8") as f:
        yield from iter_activities(f, on_error=on_error)



def iter_tuples(raws: Iterable[RawEvent], on_error=None) -> Iterator[ActivityEvent]:
    """
    Same contract as iter_activities for already split
    (kind, itemId, userId, eventTime) records, eventTime in epoch ms.
    """
    for n, raw in enumerate(raws, start=1):
        try:
            yield event_from_tuple(raw)
        except ParseError as exc:
            LOGGER.warning("Skipping malformed activity record %s: %s", n, exc)
            if on_error is not None:
                on_error(exc)
