from unittest.mock import AsyncMock, patch

from booking_engine.core.celery import celery_app
from booking_engine.core.config import settings
from booking_engine.tasks.sweeps import auto_complete_bookings, auto_no_show_bookings


def test_beat_schedule():
    schedule = celery_app.conf.beat_schedule

    assert schedule["auto-complete-bookings"]["task"] == (
        "booking_engine.tasks.sweeps.auto_complete_bookings"
    )
    assert schedule["auto-no-show-bookings"]["task"] == (
        "booking_engine.tasks.sweeps.auto_no_show_bookings"
    )
    assert schedule["auto-complete-bookings"]["schedule"] == (
        settings.SWEEP_INTERVAL_MINUTES * 60
    )


@patch("booking_engine.tasks.sweeps._run_sweep", new_callable=AsyncMock)
def test_auto_complete_task(mock_run):
    mock_run.return_value = 3

    assert auto_complete_bookings() == 3
    mock_run.assert_awaited_once_with("auto_complete")


@patch("booking_engine.tasks.sweeps._run_sweep", new_callable=AsyncMock)
def test_auto_no_show_task(mock_run):
    mock_run.return_value = 0

    assert auto_no_show_bookings() == 0
    mock_run.assert_awaited_once_with("auto_no_show")
