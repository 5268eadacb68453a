"""Tests de configuración por variables de entorno."""

from common.config import get_settings


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.setenv("RULES_ENV_FILE", str(tmp_path / "missing.env"))
    for var in ("RULES_POLL_SECONDS", "RULES_PARALLEL_WORKERS", "RULES_PUBLISHER", "RULES_WORKER_ENABLED"):
        monkeypatch.delenv(var, raising=False)

    settings = get_settings()

    assert settings.poll_seconds == 10.0
    assert settings.default_cooldown_seconds == 300
    assert settings.parallel_workers == 1
    assert settings.alerts_page_size == 200
    assert settings.publisher == "redis"
    assert settings.worker_enabled is True


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("RULES_ENV_FILE", str(tmp_path / "missing.env"))
    monkeypatch.setenv("RULES_POLL_SECONDS", "2.5")
    monkeypatch.setenv("RULES_PARALLEL_WORKERS", "0")
    monkeypatch.setenv("RULES_PUBLISHER", " HTTP ")
    monkeypatch.setenv("RULES_WORKER_ENABLED", "false")

    settings = get_settings()

    assert settings.poll_seconds == 2.5
    assert settings.parallel_workers == 1
    assert settings.publisher == "http"
    assert settings.worker_enabled is False


def test_env_file_does_not_override_real_env(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("RULES_ALERTS_PAGE_SIZE=50\nRULES_ALERT_CHANNEL=from-file\n")
    monkeypatch.setenv("RULES_ENV_FILE", str(env_file))
    monkeypatch.setenv("RULES_ALERT_CHANNEL", "from-env")
    # setenv+delenv para que monkeypatch limpie lo que cargue load_dotenv
    monkeypatch.setenv("RULES_ALERTS_PAGE_SIZE", "0")
    monkeypatch.delenv("RULES_ALERTS_PAGE_SIZE")

    settings = get_settings()

    assert settings.alert_channel == "from-env"
    assert settings.alerts_page_size == 50
