import pytest
import uvicorn

from polyshop import server
from polyshop.__main__ import main
from polyshop.core.config import Settings


@pytest.fixture
def quiet_logging(monkeypatch):
    monkeypatch.setattr(server, "setup_logging", lambda *args, **kwargs: None)


def test_cli_rejects_unknown_service(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["orders"])
    assert excinfo.value.code == 2
    assert "invalid choice" in capsys.readouterr().err


def test_run_rejects_unknown_service(quiet_logging):
    with pytest.raises(ValueError):
        server.run("orders")


def test_run_reports_startup_failure(monkeypatch, quiet_logging):
    captured = {}

    def fake_run(self, sockets=None):
        captured["config"] = self.config

    monkeypatch.setattr(uvicorn.Server, "run", fake_run)
    cfg = Settings(REDIS_URL="memory://", SHUTDOWN_GRACE_SECONDS=7, PORT=9090)

    assert server.run("cart", cfg=cfg) == server.STARTUP_FAILURE
    config = captured["config"]
    assert config.port == 9090
    assert config.timeout_graceful_shutdown == 7
    assert config.lifespan == "on"


def test_run_returns_zero_after_clean_shutdown(monkeypatch, quiet_logging):
    def fake_run(self, sockets=None):
        self.started = True

    monkeypatch.setattr(uvicorn.Server, "run", fake_run)
    assert server.run("catalog", cfg=Settings()) == 0


def test_cli_dispatches_to_run(monkeypatch):
    calls = []
    monkeypatch.setattr("polyshop.__main__.run", lambda service: calls.append(service) or 0)
    assert main(["cart"]) == 0
    assert calls == ["cart"]
