"""
Periodic re-classification of a freelancer's task board.

Each column has a poller that re-fetches the snapshot, re-runs the classifier
and reports a change only when the set of tasks in the column differs from what
was last rendered. A poller runs one fetch at a time: a poll that arrives while
another is outstanding is dropped, never queued.

The coordinator owns the pollers and decides which are due using an injected
clock, so tests can step time instead of waiting on real timers.
"""
import asyncio
import logging
import time

from asgiref.sync import sync_to_async
from django.conf import settings

from .classifier import COLUMNS, REVIEW, TODO, UPCOMING, classify_column, membership, task_ids

logger = logging.getLogger(__name__)

DEFAULT_INTERVALS = {
    TODO: 2,
    REVIEW: 5,
    UPCOMING: 30,
}


def configured_intervals():
    intervals = dict(DEFAULT_INTERVALS)
    intervals.update(getattr(settings, 'AUTO_MOVEMENT_INTERVALS', {}))
    return {column: intervals[column] for column in COLUMNS}


class ColumnPoller:
    def __init__(self, column, fetch_snapshot, on_change, grace_window=None):
        self.column = column
        self.fetch_snapshot = fetch_snapshot
        self.on_change = on_change
        self.grace_window = grace_window
        self.in_flight = False
        self.rendered = None
        self.dropped = 0

    async def poll(self):
        """Returns True when the column changed, False when it did not, None when skipped"""
        if self.in_flight:
            self.dropped += 1
            logger.debug(f"Dropping {self.column} poll, previous fetch still in flight")
            return None

        self.in_flight = True
        try:
            snapshot = await self.fetch_snapshot()
            suppressed = set()
            if self.grace_window is not None:
                suppressed = await sync_to_async(self.grace_window.active_ids)(task_ids(snapshot))
            tasks = classify_column(snapshot, self.column, suppressed)
            members = membership(tasks)
        except Exception as e:
            # keep showing the last rendered column, the next tick tries again
            logger.error(f"Error refreshing {self.column} column: {str(e)}")
            return None
        finally:
            self.in_flight = False

        if members == self.rendered:
            return False

        self.rendered = members
        await self.on_change(self.column, tasks)
        return True


class AutoMovementCoordinator:
    def __init__(self, fetch_snapshot, on_change, intervals=None, clock=time.monotonic,
                 grace_window=None):
        self.clock = clock
        self.intervals = intervals or configured_intervals()
        self.pollers = {
            column: ColumnPoller(column, fetch_snapshot, on_change, grace_window)
            for column in self.intervals
        }
        self.next_due = {column: None for column in self.intervals}

    def due_columns(self):
        now = self.clock()
        return [
            column for column, due in self.next_due.items()
            if due is None or due <= now
        ]

    async def run_due(self):
        """Poll every column whose interval has elapsed; returns ``{column: result}``"""
        now = self.clock()
        columns = self.due_columns()
        for column in columns:
            self.next_due[column] = now + self.intervals[column]

        results = await asyncio.gather(*(self.pollers[c].poll() for c in columns))
        return dict(zip(columns, results))

    def request_refresh(self):
        """Make every column due on the next tick"""
        for column in self.next_due:
            self.next_due[column] = None

    def seconds_until_next(self):
        now = self.clock()
        pending = [due - now for due in self.next_due.values() if due is not None]
        if len(pending) < len(self.next_due):
            return 0
        return max(min(pending), 0)

    async def run(self, stop_event, sleep=asyncio.sleep):
        while not stop_event.is_set():
            try:
                await self.run_due()
            except Exception as e:
                logger.error(f"Error in auto movement tick: {str(e)}")
            await sleep(self.seconds_until_next())
