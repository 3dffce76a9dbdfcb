"""AppConfig from the environment and behaviour defaults from YAML."""

from tabtree.config import AppConfig, load_default_settings
from tabtree.models import ChildBehavior, InsertionHint, UserSettings


class TestAppConfig:
    def test_defaults(self, monkeypatch):
        for name in ("DB_PATH", "FLUSH_DEBOUNCE_MS", "FLUSH_RETRIES", "CORS_ORIGIN"):
            monkeypatch.delenv(f"TABTREE_{name}", raising=False)
        monkeypatch.setattr("tabtree.config.load_dotenv", lambda path: False)
        config = AppConfig.from_env()
        assert config.db_path == "tabtree.db"
        assert config.flush_debounce_ms == 50

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setattr("tabtree.config.load_dotenv", lambda path: False)
        monkeypatch.setenv("TABTREE_DB_PATH", "/tmp/tabs.db")
        monkeypatch.setenv("TABTREE_FLUSH_RETRIES", "5")
        config = AppConfig.from_env()
        assert config.db_path == "/tmp/tabs.db"
        assert config.flush_retries == 5


class TestDefaultSettings:
    def test_bundled_file(self):
        settings = load_default_settings()
        assert settings.new_tab_position_from_link is InsertionHint.CHILD
        assert settings.new_tab_position_manual is InsertionHint.END
        assert settings.child_behavior is ChildBehavior.PROMOTE
        assert settings.gap_threshold_ratio == 0.25
        assert settings.duplicate_tab_position == "sibling"
        assert settings.auto_snapshot_interval_minutes == 0
        assert settings.max_snapshots == 10

    def test_missing_file(self, tmp_path):
        assert load_default_settings(tmp_path / "absent.yml") == UserSettings()

    def test_partial_file(self, tmp_path):
        path = tmp_path / "settings.yml"
        path.write_text("child_behavior: orphan\n")
        settings = load_default_settings(path)
        assert settings.child_behavior is ChildBehavior.ORPHAN
        assert settings.new_tab_position_manual is InsertionHint.END

    def test_empty_file(self, tmp_path):
        path = tmp_path / "settings.yml"
        path.write_text("")
        assert load_default_settings(path) == UserSettings()
