from __future__ import annotations

import json
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, metadata
from pathlib import Path
from typing import Any, Dict, List

from demopack.errors import SettingsError
from demopack.jsgen import js_literal


SETTINGS_FILE_NAME = "project.json"
ENGINE_DISTRIBUTION = "demopack"

_KNOWN_KEYS = {
    "title",
    "authors",
    "description",
    "previewImage",
    "googleAnalyticsID",
    "version",
    "origin",
}


@dataclass(frozen=True)
class ProjectSettings:
    title: str = ""
    authors: List[str] = field(default_factory=list)
    description: str = ""
    preview_image: str = ""
    google_analytics_id: str = ""
    version: str = "0.0.0"
    origin: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EngineMetadata:
    name: str
    version: str
    origin: str


def load_project_settings(project_root: Path) -> ProjectSettings:
    """Read ``project.json`` from a project root.

    Raises:
        SettingsError: If the file is missing, is not valid JSON, or does not
            hold a JSON object.
    """
    settings_path = project_root / SETTINGS_FILE_NAME
    if not settings_path.is_file():
        raise SettingsError(f"Project settings file not found: {settings_path}")
    try:
        payload = json.loads(settings_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SettingsError(f"Invalid JSON in {settings_path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise SettingsError(f"Expected a JSON object in {settings_path}")
    return settings_from_dict(payload)


def settings_from_dict(payload: Dict[str, Any]) -> ProjectSettings:
    authors = payload.get("authors", [])
    if isinstance(authors, str):
        authors = [authors]
    if not isinstance(authors, list):
        raise SettingsError("'authors' must be a list of strings.")
    return ProjectSettings(
        title=str(payload.get("title", "")),
        authors=[str(author) for author in authors],
        description=str(payload.get("description", "")),
        preview_image=str(payload.get("previewImage", "")),
        google_analytics_id=str(payload.get("googleAnalyticsID", "")),
        version=str(payload.get("version", "0.0.0")),
        origin=str(payload.get("origin", "")),
        extra={k: v for k, v in payload.items() if k not in _KNOWN_KEYS},
    )


def settings_to_dict(settings: ProjectSettings) -> Dict[str, Any]:
    payload: Dict[str, Any] = dict(settings.extra)
    payload.update(
        {
            "title": settings.title,
            "authors": list(settings.authors),
            "description": settings.description,
            "previewImage": settings.preview_image,
            "googleAnalyticsID": settings.google_analytics_id,
            "version": settings.version,
            "origin": settings.origin,
        }
    )
    return payload


def generate_settings_module(settings: ProjectSettings) -> str:
    """Render the generated ``settings.js`` module exposing ``PROJECT``."""
    body = js_literal(settings_to_dict(settings), sort_keys=True, ensure_ascii=False)
    return f"PROJECT={body};\n"


def engine_metadata() -> EngineMetadata:
    try:
        dist = metadata(ENGINE_DISTRIBUTION)
    except PackageNotFoundError:  # pragma: no cover - editable local fallback
        return EngineMetadata(name=ENGINE_DISTRIBUTION, version="0.1.0", origin="")
    return EngineMetadata(
        name=dist.get("Name", ENGINE_DISTRIBUTION),
        version=dist.get("Version", "0.1.0"),
        origin=_project_url(dist.get_all("Project-URL") or []),
    )


def _project_url(entries: List[str]) -> str:
    # Project-URL entries look like "Homepage, https://example.org".
    for entry in entries:
        _, _, url = entry.partition(",")
        if url.strip():
            return url.strip()
    return ""
