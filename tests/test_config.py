import pytest
import yaml

from forecast_tracker import config


def test_load_config_fills_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("FORECAST_DB_PATH", raising=False)
    monkeypatch.delenv("FORECAST_LOG_LEVEL", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"db_path": "data/app.db", "server": {"port": 9000}}))

    cfg = config.load_config(path)

    assert cfg["db_path"] == "data/app.db"
    assert cfg["server"] == {"port": 9000, "host": "127.0.0.1"}
    assert cfg["default_currency"] == "USD"
    assert cfg["log_level"] == "INFO"


def test_missing_file_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("FORECAST_DB_PATH", raising=False)
    monkeypatch.delenv("FORECAST_LOG_LEVEL", raising=False)
    cfg = config.load_config(tmp_path / "absent.yaml")
    assert cfg == config.DEFAULT_CONFIG
    cfg["server"]["port"] = 1
    assert config.DEFAULT_CONFIG["server"]["port"] == 8000


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("FORECAST_DB_PATH", "/tmp/env.db")
    monkeypatch.setenv("FORECAST_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("FORECAST_CONFIG", str(tmp_path / "from-env.yaml"))
    (tmp_path / "from-env.yaml").write_text("default_currency: CAD\n")

    cfg = config.load_config()

    assert cfg["db_path"] == "/tmp/env.db"
    assert cfg["log_level"] == "DEBUG"
    assert cfg["default_currency"] == "CAD"


def test_non_mapping_config_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError, match="mapping"):
        config.load_config(path)


def test_save_config_roundtrip(tmp_path, monkeypatch):
    monkeypatch.delenv("FORECAST_DB_PATH", raising=False)
    monkeypatch.delenv("FORECAST_LOG_LEVEL", raising=False)
    target = config.save_config({"db_path": "x.db"}, tmp_path / "nested" / "config.yaml")
    assert target.exists()
    assert config.load_config(target)["db_path"] == "x.db"
