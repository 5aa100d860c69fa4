from unittest.mock import MagicMock

import backend.run as run


def test_logging_configured_before_startup_line(monkeypatch):
    calls = []
    monkeypatch.setattr(run, "setup_logging", lambda: calls.append("setup_logging"))
    monkeypatch.setattr(run.logger, "info", lambda *args: calls.append("info"))
    server = MagicMock()
    monkeypatch.setattr(run.uvicorn, "run", server)
    monkeypatch.setattr("sys.argv", ["gridpulse", "--host", "127.0.0.1", "--port", "8123"])

    run.main()

    assert calls == ["setup_logging", "info"]
    server.assert_called_once_with("backend.main:app", host="127.0.0.1", port=8123, reload=False)
