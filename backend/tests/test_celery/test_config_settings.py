"""Tests for configuration settings."""

from unittest.mock import patch


class TestSyncSettings:
    """Test Settings defaults and environment overrides."""

    def test_defaults(self):
        from playbook_sync.config import Settings
        s = Settings(_env_file=None)
        assert s.celery_broker_url == ""
        assert s.similarity_threshold == 0.75
        assert s.fuzzy_match_threshold == 0.4
        assert s.min_orphans_for_clustering == 3
        assert s.sync_interval_hours == 168.0
        assert s.classifier_tier == "opus"
        assert s.cluster_tier == "sonnet"
        assert "module-4-cold-email" in s.known_modules

    def test_settings_from_env(self):
        env = {
            "CELERY_BROKER_URL": "redis://redis:6379/0",
            "SIMILARITY_THRESHOLD": "0.8",
            "SYNC_MAX_DURATION_SECONDS": "600",
            "KNOWN_MODULES": '["module-9-partnerships"]',
        }
        with patch.dict("os.environ", env):
            from playbook_sync.config import Settings
            s = Settings(_env_file=None)
            assert s.celery_broker_url == "redis://redis:6379/0"
            assert s.similarity_threshold == 0.8
            assert s.sync_max_duration_seconds == 600
            assert s.known_modules == ["module-9-partnerships"]

    def test_model_map_uses_tier_names(self):
        from playbook_sync.config import MODEL_MAP
        assert set(MODEL_MAP) == {"opus", "sonnet", "haiku"}
