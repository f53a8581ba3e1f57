import json
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from toolcrib.core.config import AppSettings
from toolcrib.core.logging import JsonLogFormatter


def test_data_dir_defaults_under_base_dir(tmp_path):
    settings = AppSettings(BASE_DIR=tmp_path, DATA_DIR=None, DB_URL="")

    assert settings.data_dir == tmp_path / "data"
    assert settings.database_url == f"sqlite:///{tmp_path / 'data' / 'toolcrib.db'}"


def test_explicit_data_dir_wins_over_base_dir(tmp_path):
    settings = AppSettings(BASE_DIR=tmp_path / "app", DATA_DIR=tmp_path / "state", DB_URL="")

    assert settings.data_dir == tmp_path / "state"
    assert settings.database_url.endswith("state/toolcrib.db")


def test_database_url_override(tmp_path):
    settings = AppSettings(BASE_DIR=tmp_path, DB_URL="sqlite://")

    assert settings.database_url == "sqlite://"


def test_allowed_origins_from_comma_separated_string():
    settings = AppSettings(ALLOWED_ORIGINS="http://a.test, http://b.test,")

    assert settings.ALLOWED_ORIGINS == ["http://a.test", "http://b.test"]


def test_json_formatter_tags_service_and_extra_fields():
    record = logging.LogRecord("toolcrib.request", logging.INFO, __file__, 1, "request.completed", None, None)
    record.extra_data = {"item_id": "HAMM1000", "status": 200}

    payload = json.loads(JsonLogFormatter(service="ToolCrib").format(record))

    assert payload["service"] == "ToolCrib"
    assert payload["message"] == "request.completed"
    assert payload["item_id"] == "HAMM1000"
    assert payload["status"] == 200
    assert "request_id" not in payload
