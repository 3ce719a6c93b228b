"""Sentry setup and scrubbing tests."""

from unittest.mock import patch

from services.roadops import sentry
from services.roadops.config import Settings


class TestStripSensitiveData:
    def test_scrubs_database_password(self):
        event = {
            "message": "connect failed postgresql://app:hunter2@db:5432/roadops",
            "extra": {"dsn": "postgres://app:s3cret@db/roadops", "count": 3},
            "breadcrumbs": {"values": [{"message": "postgresql://u:pw@h/db"}]},
        }

        out = sentry._strip_sensitive_data(event, {})

        assert "hunter2" not in out["message"]
        assert "postgresql://app:[FILTERED]@db:5432/roadops" in out["message"]
        assert out["extra"] == {"dsn": "postgres://app:[FILTERED]@db/roadops", "count": 3}
        assert "pw@" not in out["breadcrumbs"]["values"][0]["message"]

    def test_leaves_other_text_alone(self):
        event = {"message": "rating r1 failed"}
        assert sentry._strip_sensitive_data(event, {}) == {"message": "rating r1 failed"}


class TestSetupSentry:
    def test_no_dsn_is_noop(self):
        with patch.object(sentry, "settings", Settings(sentry_dsn="")), \
                patch.object(sentry.sentry_sdk, "init") as init:
            sentry.setup_sentry()
        init.assert_not_called()

    def test_init_with_scrubber(self):
        cfg = Settings(sentry_dsn="https://key@o0.ingest.sentry.io/1", environment="staging")
        with patch.object(sentry, "settings", cfg), \
                patch.object(sentry.sentry_sdk, "init") as init:
            sentry.setup_sentry()

        kwargs = init.call_args.kwargs
        assert kwargs["environment"] == "staging"
        assert kwargs["before_send"] is sentry._strip_sensitive_data
        assert kwargs["release"] == "roadops-reconciler@0.1.0"
