"""
Command line entry point.
"""

import os

import pytest

from orderdesk_server import cli, http_server, server


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so values written by the CLI are removed again afterwards
    for name in ("ORDERDESK_DATA_FILE", "ORDERDESK_LOG_LEVEL"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_http_mode_defaults_to_localhost(monkeypatch):
    calls = []
    monkeypatch.setattr(http_server, "run_http_server", lambda **kwargs: calls.append(kwargs))
    cli.main(["--mode", "http"])
    assert calls == [{"host": "127.0.0.1", "port": 8000, "reload": False}]


def test_http_mode_options(monkeypatch):
    calls = []
    monkeypatch.setattr(http_server, "run_http_server", lambda **kwargs: calls.append(kwargs))
    cli.main(["--mode", "http", "--host", "0.0.0.0", "--port", "9000", "--data-file", "memory", "--log-level", "DEBUG"])
    assert calls == [{"host": "0.0.0.0", "port": 9000, "reload": False}]
    assert os.environ["ORDERDESK_DATA_FILE"] == "memory"
    assert os.environ["ORDERDESK_LOG_LEVEL"] == "DEBUG"


def test_stdio_is_default(monkeypatch):
    started = []

    async def fake_main():
        started.append(True)

    monkeypatch.setattr(server, "main", fake_main)
    cli.main([])
    assert started == [True]


def test_rejects_unknown_mode():
    with pytest.raises(SystemExit):
        cli.main(["--mode", "sse"])
