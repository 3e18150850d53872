# Overview: Pytest coverage for retrying transient database failures.

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stockledger.errors import StorageError
from stockledger.services import concurrency


def _locked():
    return OperationalError("UPDATE inventory_items", {}, Exception("database is locked"))


@pytest.fixture
def no_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(concurrency.time, "sleep", sleeps.append)
    return sleeps


class TestRunWithRetry:
    def test_returns_first_success(self, app, no_sleep):
        assert concurrency.run_with_retry(lambda: 7) == 7
        assert no_sleep == []

    def test_recovers_after_transient_failure(self, app, no_sleep):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise _locked()
            return "ok"

        assert concurrency.run_with_retry(flaky, backoff_base=0.5) == "ok"
        assert len(calls) == 2
        assert no_sleep == [0.5]

    @pytest.mark.parametrize("error", [_locked(), StaleDataError("version mismatch")])
    def test_exhausted_attempts_surface_storage_error(self, app, no_sleep, error):
        calls = []

        def always_fails():
            calls.append(1)
            raise error

        with pytest.raises(StorageError) as exc:
            concurrency.run_with_retry(always_fails, attempts=3, backoff_base=0.1)

        assert len(calls) == 3
        assert exc.value.retryable is True
        assert exc.value.__cause__ is error
        assert no_sleep == [0.1, 0.2]

    def test_other_errors_are_not_retried(self, app, no_sleep):
        calls = []

        def broken():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            concurrency.run_with_retry(broken)
        assert len(calls) == 1
