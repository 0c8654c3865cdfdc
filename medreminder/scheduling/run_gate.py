"""
Per-medication run serialization across Celery workers.

Every trigger registers a fresh token under ``reminders:pending:<id>`` before
queueing its task. A task whose token is no longer current was replaced by a
newer trigger and exits without running. Tasks that are still current take
``reminders:lock:<id>``, so at most one run per medication is in flight.
"""
import logging
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

import redis
from redis.exceptions import LockError

from medreminder.core.config import settings
from .errors import RunLockTimeout

logger = logging.getLogger(__name__)

PENDING_TTL_SECONDS = 24 * 3600

# Delete the pending token only if it is still ours
_COMPARE_AND_DELETE = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class MedicationRunGate:
    def __init__(
        self,
        client: redis.Redis,
        lock_timeout: Optional[float] = None,
        blocking_timeout: Optional[float] = None,
    ):
        self.redis = client
        self.lock_timeout = lock_timeout or settings.RUN_LOCK_TIMEOUT_SECONDS
        self.blocking_timeout = blocking_timeout or settings.RUN_LOCK_BLOCKING_TIMEOUT_SECONDS
        self._compare_and_delete = client.register_script(_COMPARE_AND_DELETE)

    @staticmethod
    def pending_key(medication_id: int) -> str:
        return f"reminders:pending:{medication_id}"

    @staticmethod
    def lock_key(medication_id: int) -> str:
        return f"reminders:lock:{medication_id}"

    def register_pending(self, medication_id: int) -> str:
        """Make a new token current, superseding any queued run"""
        token = uuid.uuid4().hex
        self.redis.set(self.pending_key(medication_id), token, ex=PENDING_TTL_SECONDS)
        return token

    def is_current(self, medication_id: int, token: str) -> bool:
        current = self.redis.get(self.pending_key(medication_id))
        if isinstance(current, bytes):
            current = current.decode()
        return current == token

    def claim(self, medication_id: int, token: str) -> bool:
        """Consume the token; False when a newer trigger replaced it"""
        return bool(self._compare_and_delete(keys=[self.pending_key(medication_id)], args=[token]))

    @contextmanager
    def hold(self, medication_id: int) -> Iterator[None]:
        lock = self.redis.lock(
            self.lock_key(medication_id),
            timeout=self.lock_timeout,
            blocking_timeout=self.blocking_timeout,
        )
        if not lock.acquire():
            raise RunLockTimeout(medication_id, self.blocking_timeout)
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # Expired under us; the next run re-derives state anyway
                logger.warning(f"⚠️  [RunGate] Lock for medication {medication_id} was lost: {e}")


_gate: Optional[MedicationRunGate] = None


def get_run_gate() -> MedicationRunGate:
    global _gate
    if _gate is None:
        _gate = MedicationRunGate(redis.Redis.from_url(settings.REDIS_URL))
    return _gate
