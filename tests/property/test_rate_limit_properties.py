"""Property tests for the sliding-window rate limiter.

Whatever the arrival pattern, no window ever admits more than the limit,
and a denied caller that waits exactly ``retry_after`` seconds gets in.
"""

from hypothesis import given, settings

from src.lambdas.shared.middleware.rate_limit import RateLimiter
from tests.fixtures.mocks.fake_clock import FakeClock
from tests.fixtures.mocks.memory_rate_store import InMemoryRateLimitStore
from tests.property.conftest import request_gaps

NOW = 1772366400
LIMIT = 3
WINDOW_SECONDS = 10
POLICIES = {"probe": {"limit": LIMIT, "window_seconds": WINDOW_SECONDS}}
KEY = "probe#ip:192.0.2.1"


def _limiter():
    clock = FakeClock(NOW)
    store = InMemoryRateLimitStore()
    return RateLimiter(store, policies=POLICIES, clock=clock), store, clock


class TestSlidingWindow:
    @settings(max_examples=200, deadline=None)
    @given(gaps=request_gaps)
    def test_no_window_exceeds_limit(self, gaps):
        limiter, store, clock = _limiter()
        for gap in gaps:
            clock.advance(gap)
            limiter.allow("probe", "ip:192.0.2.1")

        admitted = sorted(store.hits[KEY])
        window_ms = WINDOW_SECONDS * 1000
        for t in admitted:
            in_window = [h for h in admitted if t - window_ms < h <= t]
            assert len(in_window) <= LIMIT

    @settings(max_examples=200, deadline=None)
    @given(gaps=request_gaps)
    def test_denied_requests_not_recorded(self, gaps):
        limiter, store, clock = _limiter()
        allowed = 0
        for gap in gaps:
            clock.advance(gap)
            allowed += limiter.allow("probe", "ip:192.0.2.1").allowed
        assert store.count(KEY) == allowed

    @settings(max_examples=200, deadline=None)
    @given(gaps=request_gaps)
    def test_retry_after_is_honest(self, gaps):
        limiter, _, clock = _limiter()
        for gap in gaps:
            clock.advance(gap)
            result = limiter.allow("probe", "ip:192.0.2.1")
            if not result.allowed:
                assert 1 <= result.retry_after <= WINDOW_SECONDS
                clock.advance(result.retry_after)
                assert limiter.allow("probe", "ip:192.0.2.1").allowed
