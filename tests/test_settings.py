import pytest

from utils.settings import DEFAULT_SCORING_MODELS, Settings


def test_database_dir_is_required(monkeypatch):
    monkeypatch.delenv("DATABASE_DIR", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_DIR"):
        Settings.from_env()


def test_values_are_read_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_DIR", str(tmp_path / "db"))
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path / "objects"))
    monkeypatch.setenv("SCORING_MODELS", "m1, m2 ,")
    monkeypatch.setenv("DATABASE_RESET_ON_STARTUP", "true")
    monkeypatch.delenv("STORAGE_BUCKET", raising=False)

    settings = Settings.from_env()

    assert settings.database_dir == tmp_path / "db"
    assert settings.storage_dir == tmp_path / "objects"
    assert settings.scoring_models == ("m1", "m2")
    assert settings.reset_database_on_startup is True
    assert settings.storage_bucket == "food-photos"


def test_default_model_ladder(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_DIR", str(tmp_path))
    monkeypatch.delenv("SCORING_MODELS", raising=False)
    assert Settings.from_env().scoring_models == DEFAULT_SCORING_MODELS


def test_shutdown_grace_period(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_DIR", str(tmp_path))
    monkeypatch.setenv("SHUTDOWN_GRACE_PERIOD", "1.5")
    assert Settings.from_env().shutdown_grace_period == 1.5
