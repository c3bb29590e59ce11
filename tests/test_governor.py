"""Tests for the request governor and rate-limit header extraction."""

from types import SimpleNamespace

import httpx
import pytest
from twitter_list_rss.errors import NotFound, QuotaExhausted, TransientNetwork, UnknownUpstreamError
from twitter_list_rss.ratelimit import (
    BackoffPolicy,
    QuotaLedger,
    RateLimitInfo,
    RequestGovernor,
    extract_rate_limit_info,
)

ENDPOINT = "/lists/123/tweets"
URL = "https://api.twitter.com/2/lists/123/tweets"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class MidpointRandom:
    """RNG stub that always lands on zero jitter."""

    def random(self) -> float:
        return 0.5


def _status_error(status: int, headers: dict[str, str] | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", URL)
    response = httpx.Response(status, headers=headers or {}, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


def _rate_headers(remaining: int, reset: float) -> dict[str, str]:
    return {
        "x-rate-limit-limit": "75",
        "x-rate-limit-remaining": str(remaining),
        "x-rate-limit-reset": str(int(reset)),
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(clock: FakeClock) -> QuotaLedger:
    return QuotaLedger(clock=clock)


@pytest.fixture
def governor(ledger: QuotaLedger, clock: FakeClock) -> RequestGovernor:
    return RequestGovernor(ledger, sleep=clock.sleep, rng=MidpointRandom())


class TestGovernedCall:
    def test_success_records_headers_and_spends_call(self, governor, ledger, clock):
        response = httpx.Response(200, headers=_rate_headers(10, clock.now + 900))
        result = governor.governed_call(ENDPOINT, lambda: response)
        assert result is response
        record = ledger.get(ENDPOINT)
        assert record is not None
        assert record.limit == 75
        assert record.remaining == 9

    def test_retries_quota_exhausted_then_gives_up(self, governor, clock, mocker):
        operation = mocker.Mock(side_effect=_status_error(429))
        with pytest.raises(QuotaExhausted) as excinfo:
            governor.governed_call(ENDPOINT, operation, max_retries=3)
        assert operation.call_count == 4
        assert excinfo.value.attempts == 4
        assert excinfo.value.status_code == 429
        assert "after 4 attempts" in str(excinfo.value)
        assert clock.sleeps == [300.0, 600.0, 1200.0]

    def test_zero_retries_makes_single_attempt(self, governor, mocker):
        operation = mocker.Mock(side_effect=_status_error(429))
        with pytest.raises(QuotaExhausted) as excinfo:
            governor.governed_call(ENDPOINT, operation, max_retries=0)
        assert operation.call_count == 1
        assert excinfo.value.attempts == 1

    def test_never_retries_not_found(self, governor, clock, mocker):
        operation = mocker.Mock(side_effect=_status_error(404))
        with pytest.raises(NotFound):
            governor.governed_call(ENDPOINT, operation, max_retries=3)
        assert operation.call_count == 1
        assert clock.sleeps == []

    def test_network_errors_propagate_untried(self, governor, mocker):
        operation = mocker.Mock(side_effect=httpx.ConnectError("connection refused"))
        with pytest.raises(TransientNetwork) as excinfo:
            governor.governed_call(ENDPOINT, operation)
        assert operation.call_count == 1
        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)

    def test_unexpected_errors_are_classified(self, governor):
        def boom():
            raise ValueError("bad payload")

        with pytest.raises(UnknownUpstreamError, match="bad payload"):
            governor.governed_call(ENDPOINT, boom)

    def test_waits_for_reset_advertised_on_429(self, governor, ledger, clock, mocker):
        reset = clock.now + 30
        ok = httpx.Response(200)
        operation = mocker.Mock(side_effect=[_status_error(429, _rate_headers(0, reset)), ok])
        result = governor.governed_call(ENDPOINT, operation)
        assert result is ok
        assert operation.call_count == 2
        assert clock.sleeps == [31.0]
        assert ledger.get(ENDPOINT) is None

    def test_blocks_until_window_resets_before_dispatch(self, governor, ledger, clock, mocker):
        ledger.record_response_headers(ENDPOINT, 75, 0, int(clock.now) + 10)
        operation = mocker.Mock(return_value={"data": []})
        governor.governed_call(ENDPOINT, operation)
        assert clock.sleeps == [11.0]
        operation.assert_called_once()

    def test_reraises_already_classified_error(self, governor, mocker):
        error = QuotaExhausted("slow down")
        operation = mocker.Mock(side_effect=error)
        with pytest.raises(QuotaExhausted) as excinfo:
            governor.governed_call(ENDPOINT, operation, max_retries=1)
        assert excinfo.value is error
        assert error.attempts == 2


class TestBackoff:
    def test_aggressive_doubles_up_to_cap(self, governor):
        delays = [governor.compute_backoff(attempt) for attempt in range(6)]
        assert delays == [300.0, 600.0, 1200.0, 2400.0, 3600.0, 3600.0]

    def test_conservative_preset(self, ledger, clock):
        gov = RequestGovernor(ledger, conservative=True, sleep=clock.sleep, rng=MidpointRandom())
        assert gov.policy == BackoffPolicy.conservative()
        assert [gov.compute_backoff(a) for a in range(5)] == [600.0, 1200.0, 2400.0, 4800.0, 7200.0]

    def test_floor_applies_after_jitter(self, ledger, clock):
        policy = BackoffPolicy(base_delay=1.0, max_delay=10.0, min_delay=5.0)
        gov = RequestGovernor(ledger, policy=policy, sleep=clock.sleep, rng=MidpointRandom())
        assert gov.compute_backoff(0) == 5.0

    def test_jitter_stays_within_ten_percent(self, ledger, clock):
        gov = RequestGovernor(ledger, sleep=clock.sleep)
        for _ in range(50):
            assert 270.0 <= gov.compute_backoff(0) <= 330.0


class TestExtractRateLimitInfo:
    def test_from_httpx_response(self):
        response = httpx.Response(200, headers=_rate_headers(5, 1_700_000_900))
        assert extract_rate_limit_info(response) == RateLimitInfo("75", "5", "1700000900")

    def test_from_parsed_attribute(self):
        info = RateLimitInfo("75", "1", "1700000900")
        assert extract_rate_limit_info(SimpleNamespace(rate_limit=info, headers={})) is info

    def test_from_nested_mapping(self):
        result = {"data": [], "rate_limit": {"limit": 75, "remaining": 3, "reset": 1_700_000_900}}
        assert extract_rate_limit_info(result) == RateLimitInfo("75", "3", "1700000900")

    def test_from_nested_headers(self):
        result = {"data": [], "headers": _rate_headers(2, 1_700_000_900)}
        assert extract_rate_limit_info(result) == RateLimitInfo("75", "2", "1700000900")

    def test_from_flat_mapping_case_insensitive(self):
        result = {"X-Rate-Limit-Limit": "75", "X-Rate-Limit-Remaining": "0", "X-Rate-Limit-Reset": "1700000900"}
        assert extract_rate_limit_info(result) == RateLimitInfo("75", "0", "1700000900")

    def test_unrecognized_shapes(self):
        assert extract_rate_limit_info(None) is None
        assert extract_rate_limit_info({"data": []}) is None
        assert extract_rate_limit_info(httpx.Response(200)) is None
        assert extract_rate_limit_info("text") is None
