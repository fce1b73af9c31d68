"""Tests for the watch command line."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from editorsync.main import main, setup_logging, watch
from editorsync.services.change_transport import ChangeTransport


@patch("editorsync.main.asyncio.run")
@patch("editorsync.main.watch", new_callable=MagicMock)
def test_main_passes_options(mock_watch, mock_run):
    main(["--path", "/src", "--mode", "pull", "--interval", "500", "--url", "http://svc"])
    mock_watch.assert_called_once_with("/src", "pull", 500, "http://svc")
    mock_run.assert_called_once_with(mock_watch.return_value)


def test_main_rejects_unknown_mode():
    with pytest.raises(SystemExit):
        main(["--mode", "carrier-pigeon"])


def test_setup_logging_quiets_http_loggers():
    setup_logging("DEBUG")
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("apscheduler").level == logging.WARNING


@pytest.mark.asyncio
async def test_watch_detaches_listeners_on_cancel(remote):
    transport = ChangeTransport(remote, mode="pull", poll_interval_ms=60_000)
    shutdown = AsyncMock()
    with patch("editorsync.main.init_services", new_callable=AsyncMock), \
            patch("editorsync.main.get_transport", return_value=transport), \
            patch("editorsync.main.get_tree_cache", return_value=MagicMock(fingerprint="t1")), \
            patch("editorsync.main.shutdown_services", shutdown), \
            patch.object(transport, "status", wraps=transport.status) as status:
        task = asyncio.create_task(watch("/", "pull", 60_000, None))
        await asyncio.sleep(0.01)
        assert len(transport._change_listeners) == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert transport._change_listeners == []
    assert transport._connectivity_listeners == []
    assert transport._error_listeners == []
    status.assert_called_once()
    shutdown.assert_awaited_once()
