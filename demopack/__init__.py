"""Public Python API for demopack.

The package exposes the build pipeline that turns a demo project into a
self-contained HTML artifact, and the runtime loader that resolves the
embedded assets again.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from demopack.collector import AssetManifest, collect_assets
from demopack.errors import BuildError, LoaderError
from demopack.loader import BatchResult, Loader, LoaderContext, LoadBatch, RequestKind
from demopack.pipeline import BuildOptions, BuildPipeline, build_project
from demopack.shadergen import ShaderManifest, generate_shader_manifest

try:
    __version__: str = version("demopack")
except PackageNotFoundError:  # pragma: no cover - editable local fallback
    __version__ = "0.1.0"


__all__ = [
    "__version__",
    "AssetManifest",
    "BatchResult",
    "BuildError",
    "BuildOptions",
    "BuildPipeline",
    "LoadBatch",
    "Loader",
    "LoaderContext",
    "LoaderError",
    "RequestKind",
    "ShaderManifest",
    "build_project",
    "collect_assets",
    "generate_shader_manifest",
]
