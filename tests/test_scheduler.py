from datetime import datetime, timezone

from fx_rates import RateTable
from scheduler import SchedulerManager


class _FakeFx:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def rate_table(self, base=None, *, force=False):
        self.calls.append(force)
        if self.error:
            raise self.error
        return RateTable(
            provider="open_er_api",
            base="USD",
            rates={"USD": 1.0},
            fetched_at=datetime(2025, 8, 1, tzinfo=timezone.utc),
        )


def test_run_job_forces_a_refresh():
    fx = _FakeFx()
    SchedulerManager(fx_service=fx)._run_job("test")
    assert fx.calls == [True]


def test_run_job_survives_provider_failures(caplog):
    fx = _FakeFx(error=RuntimeError("Failed to fetch FX rates from open_er_api"))
    SchedulerManager(fx_service=fx)._run_job("test")
    assert fx.calls == [True]
    assert "fx_refresh_failed" in caplog.text


def test_start_registers_hourly_job():
    manager = SchedulerManager(fx_service=_FakeFx())
    manager.start()
    try:
        job = manager.scheduler.get_job("fx_refresh_hourly")
        assert job is not None
    finally:
        manager.stop()
    assert not manager.scheduler.running
