"""
Circuit breaker with Redis-backed state, one per capability.

States:
  - CLOSED    → normal operation, calls pass through
  - OPEN      → too many upstream failures, calls fail fast with CircuitOpenError
  - HALF_OPEN → after reset_timeout, one probe call is let through

State lives in Redis so every worker process sees the same breaker. Only
failures that say something about the upstream's health (transient and
rate-limited) count; a safety rejection or a malformed response is about
one request and leaves the breaker alone. CircuitOpenError is itself
transient, so a fast-failed job simply backs off and retries.
"""
import logging
import time

from leadpipe.pipeline.base import CapabilityError, ErrorKind, classify

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'

_COUNTED_KINDS = {ErrorKind.TRANSIENT, ErrorKind.RATE_LIMITED}


class CircuitOpenError(CapabilityError):
    """Raised when calling through an open breaker."""
    kind = ErrorKind.TRANSIENT

    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN — capability unavailable")


class CircuitBreaker:
    """
    Usage:
        cb = CircuitBreaker('generator', redis_conn, failure_threshold=5, reset_timeout=60)
        result = cb.call(generator_fn, arg)
    """

    PREFIX = 'leadpipe:cb'

    def __init__(self, name, redis_client, failure_threshold=3, reset_timeout=300):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    def _key(self, suffix):
        return f'{self.PREFIX}:{self.name}:{suffix}'

    # ── State ─────────────────────────────────────────────────────────

    @property
    def state(self):
        try:
            s = self.redis.get(self._key('state'))
            if s is None:
                return CLOSED
            if isinstance(s, bytes):
                s = s.decode()
            if s == OPEN and self._seconds_since_failure() > self.reset_timeout:
                self.redis.set(self._key('state'), HALF_OPEN)
                return HALF_OPEN
            return s
        except Exception:
            # Redis down: let calls through rather than stall the pipeline
            logger.warning("Circuit '%s' state unreadable, treating as closed", self.name)
            return CLOSED

    @property
    def failure_count(self):
        try:
            val = self.redis.get(self._key('failures'))
            return int(val) if val else 0
        except Exception:
            return 0

    def _seconds_since_failure(self):
        last = self.redis.get(self._key('last_failure'))
        if not last:
            return float('inf')
        return time.time() - float(last)

    # ── Calls ─────────────────────────────────────────────────────────

    def call(self, func, *args, **kwargs):
        """Execute func through the breaker."""
        if self.state == OPEN:
            retry_after = max(0.0, self.reset_timeout - self._seconds_since_failure())
            raise CircuitOpenError(self.name, retry_after=retry_after)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            if classify(e) in _COUNTED_KINDS:
                self._on_failure(e)
            raise
        self._on_success()
        return result

    def _on_success(self):
        try:
            pipe = self.redis.pipeline()
            pipe.set(self._key('state'), CLOSED)
            pipe.set(self._key('failures'), 0)
            pipe.hincrby(self._key('health'), 'success', 1)
            pipe.hset(self._key('health'), 'last_success', str(time.time()))
            pipe.execute()
        except Exception:
            logger.debug("Circuit '%s' success not recorded", self.name, exc_info=True)

    def _on_failure(self, error):
        try:
            count = self.redis.incr(self._key('failures'))
            now = str(time.time())
            pipe = self.redis.pipeline()
            pipe.set(self._key('last_failure'), now)
            pipe.hincrby(self._key('health'), 'failure', 1)
            pipe.hset(self._key('health'), 'last_failure', now)
            pipe.hset(self._key('health'), 'last_error', str(error)[:200])
            if count >= self.failure_threshold:
                pipe.set(self._key('state'), OPEN)
            pipe.execute()
            if count >= self.failure_threshold:
                logger.warning(
                    "Circuit '%s' OPENED after %d failures (threshold=%d): %s",
                    self.name, count, self.failure_threshold, error,
                )
            else:
                logger.info("Circuit '%s' failure %d/%d: %s", self.name, count, self.failure_threshold, error)
        except Exception:
            logger.debug("Circuit '%s' failure not recorded", self.name, exc_info=True)

    def reset(self):
        """Manually close the breaker."""
        pipe = self.redis.pipeline()
        pipe.set(self._key('state'), CLOSED)
        pipe.set(self._key('failures'), 0)
        pipe.delete(self._key('last_failure'))
        pipe.execute()
        logger.info("Circuit '%s' manually reset to CLOSED", self.name)

    def get_health(self):
        """Health metrics for the /api/health endpoint."""
        try:
            data = self.redis.hgetall(self._key('health')) or {}
            data = {_text(k): _text(v) for k, v in data.items()}
        except Exception:
            data = {}
        return {
            'name': self.name,
            'state': self.state,
            'failure_count': self.failure_count,
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
            'total_success': int(data.get('success', 0)),
            'total_failure': int(data.get('failure', 0)),
            'last_success': float(data['last_success']) if data.get('last_success') else None,
            'last_failure': float(data['last_failure']) if data.get('last_failure') else None,
            'last_error': data.get('last_error', ''),
        }


def build_breakers(redis_client):
    """The breakers guarding each capability."""
    return {
        'scraper': CircuitBreaker('scraper', redis_client, failure_threshold=5, reset_timeout=120),
        'generator': CircuitBreaker('generator', redis_client, failure_threshold=5, reset_timeout=60),
    }


def _text(v):
    return v.decode() if isinstance(v, bytes) else v
