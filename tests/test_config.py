import pytest
from pydantic import ValidationError

from core.config import BudgetSettings, Secrets, Settings, load_config

CONFIG = """
run:
  mode: batch
  concurrency: 2
  fetch_limit: 25
budget:
  target: 1200
  max: 2000
providers:
  livetonight:
    min_interval: 0.1
  mariagesnet:
    enabled: false
"""


class TestLoadConfig:
    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG, encoding="utf-8")

        settings = load_config(str(path))

        assert settings.run.mode == "batch"
        assert settings.run.concurrency == 2
        assert settings.run.fetch_limit == 25
        assert settings.budget.target == 1200
        assert settings.provider("livetonight").min_interval == 0.1
        assert settings.provider("1001dj").min_interval is None

    def test_enabled_providers(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG, encoding="utf-8")
        settings = load_config(str(path))
        assert settings.enabled_providers(["1001dj", "livetonight", "mariagesnet"]) == [
            "1001dj",
            "livetonight",
        ]

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_config(str(tmp_path / "nope.yaml"))
        assert settings.run.mode == "tasks"
        assert settings.budget.max == 2500

    def test_env_var_path(self, tmp_path, monkeypatch):
        path = tmp_path / "other.yaml"
        path.write_text("run:\n  concurrency: 9\n", encoding="utf-8")
        monkeypatch.setenv("PRESTA_CONFIG", str(path))
        assert load_config().run.concurrency == 9

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(str(path))

    def test_invalid_mode_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("run:\n  mode: turbo\n", encoding="utf-8")
        with pytest.raises(ValidationError):
            load_config(str(path))


def test_budget_max_below_target_rejected():
    with pytest.raises(ValidationError):
        BudgetSettings(target=3000, max=2000)


class TestSecrets:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BRIGHTDATA_API_KEY", "k-123")
        monkeypatch.setenv("BRIGHTDATA_WEB_UNLOCKER_ZONE", "zone1")
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        secrets = Secrets.from_env()
        assert secrets.brightdata_api_key == "k-123"
        assert secrets.brightdata_zone == "zone1"
        assert secrets.openai_api_key is None

    def test_repr_hides_values(self):
        secrets = Secrets(brightdata_api_key="super-secret")
        assert "super-secret" not in repr(secrets)
        assert "brightdata_api_key" in repr(secrets)

    def test_not_serialized_with_settings(self):
        settings = Settings(secrets=Secrets(brightdata_api_key="super-secret"))
        assert "secrets" not in settings.model_dump()
