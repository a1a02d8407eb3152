"""Tests for configuration, logging, error payloads and payload validation."""

import io
import json
import logging
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from tabforum import main as startup
from tabforum.core.config import ConfigurationError, Environment, Settings, settings
from tabforum.core.logging_config import (
    _JsonFormatter,
    _SecretFilter,
    mask_database_url,
    request_id_var,
    setup_logging,
)
from tabforum.database import get_db
from tabforum.exceptions import ForbiddenError, NotFoundError, ValidationError
from tabforum.schemas import ContentCreate, FindAllParams, TreeOptions, validate


def _record(msg, **extra):
    record = logging.LogRecord("tabforum.test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.tree_max_depth == 4
        assert settings.content_default_earnings == 1
        assert settings.default_per_page == 30

    def test_log_level_normalized(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, log_level="LOUD")

    def test_tree_depth_bounded(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, tree_max_depth=5)

    def test_production_rejects_sqlite(self):
        settings = Settings(_env_file=None, environment=Environment.PRODUCTION, database_url="sqlite:///x.db")
        with pytest.raises(ConfigurationError):
            settings.validate_production_config()

    def test_development_tolerates_sqlite(self):
        Settings(_env_file=None, database_url="sqlite:///x.db").validate_production_config()


class TestLogging:

    def test_json_formatter_merges_extra(self):
        line = _JsonFormatter().format(_record("Loaded content tree", strategy="new", rows=3))
        payload = json.loads(line)
        assert payload["message"] == "Loaded content tree"
        assert payload["strategy"] == "new"
        assert payload["rows"] == 3
        assert payload["level"] == "INFO"

    def test_json_formatter_includes_request_id(self):
        token = request_id_var.set("req-123")
        try:
            payload = json.loads(_JsonFormatter().format(_record("hello")))
        finally:
            request_id_var.reset(token)
        assert payload["request_id"] == "req-123"

    def test_secret_filter_redacts_database_password(self):
        record = _record("connecting to postgresql://tabforum:hunter2secret@db:5432/tabforum")
        _SecretFilter().filter(record)
        assert "hunter2secret" not in record.msg
        assert "***REDACTED***" in record.msg

    def test_mask_database_url_keeps_user_and_host(self):
        masked = mask_database_url("postgresql://tabforum:s3cret@db:5432/tabforum")
        assert masked == "postgresql://tabforum:***REDACTED***@db:5432/tabforum"

    def test_setup_logging_installs_one_root_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        stream = io.StringIO()
        try:
            handler = setup_logging(log_level="INFO", log_format="json", stream=stream)
            assert root.handlers == [handler]
            logging.getLogger("tabforum.test").info("Loaded content tree", extra={"rows": 2})
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

        payload = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert payload["message"] == "Loaded content tree"
        assert payload["rows"] == 2


class TestErrors:

    def test_validation_error_payload(self):
        error = ValidationError("bad", key="title", error_location_code="MODEL:X")
        payload = error.to_dict()
        assert payload["error"] == "VALIDATION_ERROR"
        assert payload["status_code"] == 400
        assert payload["key"] == "title"
        assert payload["error_location_code"] == "MODEL:X"
        assert payload["action"]

    def test_status_codes(self):
        assert NotFoundError().status_code == 404
        assert ForbiddenError().status_code == 403


class TestValidate:

    def test_returns_model(self):
        params = validate(FindAllParams, {"page": 2})
        assert params.page == 2
        assert params.per_page == 30

    def test_instance_passes_through(self):
        params = FindAllParams()
        assert validate(FindAllParams, params) is params

    def test_first_error_becomes_key(self):
        with pytest.raises(ValidationError) as exc:
            validate(FindAllParams, {"page": 0})
        assert exc.value.key == "page"
        assert exc.value.error_location_code == "MODEL:VALIDATOR:FINAL_SCHEMA"

    def test_nested_key(self):
        with pytest.raises(ValidationError) as exc:
            validate(TreeOptions, {"where": {"id": 5}})
        assert exc.value.key == "where.id"

    def test_enum_defaults_are_plain_strings(self):
        assert validate(ContentCreate, {"owner_id": "u", "body": "b"}).status == "draft"
        assert validate(TreeOptions, {"where": {}}).strategy == "relevant"

    def test_invalid_slug_rejected(self):
        with pytest.raises(ValidationError) as exc:
            validate(ContentCreate, {"owner_id": "u", "body": "b", "slug": "Not A Slug"})
        assert exc.value.key == "slug"


class TestGetDb:

    def test_yields_session_and_closes(self):
        generator = get_db()
        session = next(generator)
        assert session.is_active
        with pytest.raises(StopIteration):
            next(generator)


class TestMain:

    @pytest.fixture(autouse=True)
    def _quiet_setup(self, monkeypatch):
        monkeypatch.setattr(startup, "setup_logging", Mock())

    def test_startup_configures_logging_and_tables(self):
        assert startup.main() == 0
        startup.setup_logging.assert_called_once_with(log_level=settings.log_level, log_format=settings.log_format)

    def test_unsafe_production_config_blocks_startup(self, monkeypatch):
        monkeypatch.setattr(settings, "environment", Environment.PRODUCTION)
        monkeypatch.setattr(settings, "database_url", "sqlite:///tabforum.db")
        assert startup.main() == 1

    def test_unreachable_database_blocks_startup(self, monkeypatch):
        engine = Mock()
        engine.connect.side_effect = SQLAlchemyError("Connection refused")
        monkeypatch.setattr(startup, "engine", engine)
        assert startup.check_database_connection() is False
        assert startup.main() == 1
