from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from demopack.settings import EngineMetadata, ProjectSettings


@dataclass(frozen=True)
class ArtifactMetadata:
    title: str
    author: str
    description: str
    creation_time: str
    software: str
    preview_image: str = ""

    def comment_items(self) -> Dict[str, str]:
        """Items rendered as HTML comments, in display order."""
        return {
            "Title": self.title,
            "Author": self.author,
            "Description": self.description,
            "Creation time": self.creation_time,
            "Software": self.software,
            "previewImage": self.preview_image,
        }


def build_metadata(
    settings: ProjectSettings,
    engine: EngineMetadata,
    *,
    now: Optional[datetime] = None,
) -> ArtifactMetadata:
    now = now or datetime.now().astimezone()
    project_line = f"{settings.version} @ {settings.origin}"
    engine_line = f"{engine.name}@{engine.version} from {engine.origin}"
    return ArtifactMetadata(
        title=settings.title,
        author=", ".join(settings.authors),
        description=settings.description,
        creation_time=now.isoformat(timespec="seconds"),
        software=f"{project_line}\n{engine_line}",
        preview_image=settings.preview_image,
    )
