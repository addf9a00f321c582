import json

import pytest

from demopack.errors import SettingsError
from demopack.settings import (
    generate_settings_module,
    load_project_settings,
    settings_from_dict,
)


def test_load_project_settings_maps_known_keys(demo_project):
    settings = load_project_settings(demo_project)

    assert settings.title == "Tom & Jerry"
    assert settings.authors == ["alice", "bob"]
    assert settings.google_analytics_id == "UA-1234"
    assert settings.preview_image == "https://example.org/preview.png"
    assert settings.extra == {"music": {"bpm": 120}}


def test_missing_settings_file_raises(tmp_path):
    with pytest.raises(SettingsError, match="not found"):
        load_project_settings(tmp_path)


def test_non_object_settings_raise(tmp_path):
    (tmp_path / "project.json").write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(SettingsError, match="JSON object"):
        load_project_settings(tmp_path)


def test_single_author_string_is_accepted():
    settings = settings_from_dict({"authors": "solo"})

    assert settings.authors == ["solo"]
    assert settings.version == "0.0.0"


def test_settings_module_exposes_project_global():
    module = generate_settings_module(settings_from_dict({"title": "T", "bpm": 90}))

    assert module.startswith("PROJECT=")
    payload = json.loads(module[len("PROJECT="):].strip().rstrip(";"))
    assert payload["title"] == "T"
    assert payload["bpm"] == 90
    assert payload["authors"] == []


def test_settings_module_escapes_closing_tags():
    settings = settings_from_dict({"title": "T", "description": "see </script><b>x</b>"})

    module = generate_settings_module(settings)

    assert "</" not in module
    payload = json.loads(module[len("PROJECT="):].strip().rstrip(";"))
    assert payload["description"] == "see </script><b>x</b>"
