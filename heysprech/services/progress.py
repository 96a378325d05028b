"""Maps engine output milestones to coarse job progress."""

import logging

logger = logging.getLogger(__name__)

# substring seen on the engine's stdout -> progress percentage
MILESTONES = (
    ('Processing', 25),
    ('Transcribing', 50),
    ('Translating', 75),
)


class ProgressReporter:
    """Monotonic 0-100 counter fed line by line.

    ``sink`` is called with the new value every time it advances; the queue
    uses it to persist progress on the RQ job.
    """

    def __init__(self, sink=None, milestones=MILESTONES):
        self.value = 0
        self.sink = sink
        self.milestones = milestones

    def feed(self, line):
        for needle, percent in self.milestones:
            if needle in line and percent > self.value:
                self._advance(percent)
        return self.value

    def complete(self):
        self._advance(100)

    def _advance(self, percent):
        if percent <= self.value:
            return
        self.value = percent
        if self.sink is not None:
            try:
                self.sink(percent)
            except Exception:
                # progress is informational; never fail the job for it
                logger.exception('progress sink failed at %s%%', percent)
