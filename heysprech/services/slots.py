"""Redis-backed counting semaphore for engine subprocesses.

Workers may run on several hosts, so the cap on concurrently running engine
containers lives in Redis: a sorted set of lease tokens scored by the time
they were taken. Leases older than ``lease_seconds`` belong to dead workers
and are dropped before each acquisition attempt.
"""

import logging
import time
import uuid
from contextlib import contextmanager

from redis.exceptions import WatchError

logger = logging.getLogger(__name__)


class EngineSlots:

    def __init__(self, connection, limit, key='heysprech:engine:slots', lease_seconds=900, poll_interval=1.0):
        if limit < 1:
            raise ValueError('limit must be >= 1')
        self.connection = connection
        self.limit = limit
        self.key = key
        self.lease_seconds = lease_seconds
        self.poll_interval = poll_interval

    def _purge_expired(self, now):
        removed = self.connection.zremrangebyscore(self.key, '-inf', now - self.lease_seconds)
        if removed:
            logger.warning('dropped %s expired engine slot lease(s)', removed)

    def try_acquire(self, token):
        now = time.time()
        self._purge_expired(now)
        with self.connection.pipeline() as pipe:
            try:
                pipe.watch(self.key)
                if pipe.zcard(self.key) >= self.limit:
                    return False
                pipe.multi()
                pipe.zadd(self.key, {token: now})
                pipe.execute()
                return True
            except WatchError:
                # another worker changed the set in between; caller polls again
                return False

    def acquire(self, token=None, timeout=None):
        token = token or uuid.uuid4().hex
        deadline = None if timeout is None else time.monotonic() + timeout
        waited = False
        while not self.try_acquire(token):
            if deadline is not None and time.monotonic() >= deadline:
                return None
            if not waited:
                logger.info('engine slots full (%s), waiting', self.limit)
                waited = True
            time.sleep(self.poll_interval)
        return token

    def release(self, token):
        self.connection.zrem(self.key, token)

    def in_use(self):
        return self.connection.zcard(self.key)

    @contextmanager
    def hold(self, token=None, timeout=None):
        token = self.acquire(token, timeout=timeout)
        if token is None:
            raise TimeoutError('timed out waiting for an engine slot')
        try:
            yield token
        finally:
            self.release(token)
