from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from demopack.errors import ShaderGenerationError
from demopack.jsgen import js_literal, script_safe


logger = logging.getLogger(__name__)

SHADERS_GLOBAL = "SHADERS"
DEFAULT_EFFECT = "default"
UNIFORMS_FILE = "uniforms.json"
VERTEX_FILE = "vertex.glsl"
FRAGMENT_FILE = "fragment.glsl"


@dataclass(frozen=True)
class ShaderEffect:
    name: str
    uniforms: str
    vertex_shader: str
    fragment_shader: str
    uniforms_path: Path
    vertex_path: Path
    fragment_path: Path

    def to_js(self) -> str:
        return (
            f"{SHADERS_GLOBAL}[{js_literal(self.name)}]={{"
            f"uniforms: {script_safe(self.uniforms.strip())}, "
            f"vertexShader: {js_literal(self.vertex_shader)}, "
            f"fragmentShader: {js_literal(self.fragment_shader)}}};"
        )


class ShaderManifest:
    """Ordered mapping from effect name to its resolved :class:`ShaderEffect`."""

    def __init__(self) -> None:
        self._effects: Dict[str, ShaderEffect] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._effects

    def __getitem__(self, name: str) -> ShaderEffect:
        return self._effects[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._effects)

    def __len__(self) -> int:
        return len(self._effects)

    def names(self) -> List[str]:
        return list(self._effects)

    def set(self, effect: ShaderEffect) -> None:
        self._effects[effect.name] = effect

    def to_module(self) -> str:
        lines = [f"{SHADERS_GLOBAL}={{}};"]
        lines.extend(effect.to_js() for effect in self._effects.values())
        return "\n".join(lines) + "\n"


class ShaderResolver:
    """Resolves each shader artifact of an effect independently.

    Lookup order for ``<effect>/<file>``: the project's shader directory, the
    engine's copy of that effect, then the engine's ``default`` effect.
    """

    def __init__(self, project_dir: Path, engine_dir: Path):
        self.project_dir = Path(project_dir)
        self.engine_dir = Path(engine_dir)

    def candidates(self, effect: str, filename: str) -> List[Path]:
        return [
            self.project_dir / effect / filename,
            self.engine_dir / effect / filename,
            self.engine_dir / DEFAULT_EFFECT / filename,
        ]

    def resolve(self, effect: str, filename: str) -> Path:
        for candidate in self.candidates(effect, filename):
            if candidate.is_file():
                return candidate
        raise ShaderGenerationError(
            f"Shader effect '{effect}' has no '{filename}' and no engine default exists."
        )

    def resolve_effect(self, name: str) -> ShaderEffect:
        uniforms_path = self.resolve(name, UNIFORMS_FILE)
        vertex_path = self.resolve(name, VERTEX_FILE)
        fragment_path = self.resolve(name, FRAGMENT_FILE)
        uniforms = _read(uniforms_path)
        try:
            json.loads(uniforms)
        except json.JSONDecodeError as exc:
            raise ShaderGenerationError(
                f"Invalid uniform schema in {uniforms_path}: {exc}"
            ) from exc
        return ShaderEffect(
            name=name,
            uniforms=uniforms,
            vertex_shader=_read(vertex_path),
            fragment_shader=_read(fragment_path),
            uniforms_path=uniforms_path,
            vertex_path=vertex_path,
            fragment_path=fragment_path,
        )


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ShaderGenerationError(f"Failed to read shader file {path}: {exc}") from exc


def list_effect_names(shader_dir: Path) -> List[str]:
    if not shader_dir.is_dir():
        return []
    return sorted(entry.name for entry in shader_dir.iterdir() if entry.is_dir())


def discover_effects(project_dir: Path, engine_dir: Path) -> List[str]:
    """Merge effect names by name, project effects first.

    A name present in both directories is listed once, at the project's
    position; its artifacts are then resolved project-first.
    """
    names: List[str] = []
    seen = set()
    for name in list_effect_names(project_dir) + list_effect_names(engine_dir):
        if name in seen:
            continue
        seen.add(name)
        names.append(name)
    return names


def generate_shader_manifest(
    project_dir: Path,
    engine_dir: Path,
    *,
    resolver: Optional[ShaderResolver] = None,
) -> ShaderManifest:
    """Resolve every discovered effect into a :class:`ShaderManifest`."""
    resolver = resolver or ShaderResolver(project_dir, engine_dir)
    manifest = ShaderManifest()
    for name in discover_effects(Path(project_dir), Path(engine_dir)):
        logger.info("Compiling shader %s", name)
        manifest.set(resolver.resolve_effect(name))
    return manifest
