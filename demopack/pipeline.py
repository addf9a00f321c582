"""Build orchestration.

A build is an ordered list of :class:`BuildStage` objects run one after the
other against a shared :class:`BuildContext`. Every failure leaves through the
same channel: a :class:`~demopack.errors.BuildError` tagged with the stage that
raised it, which stops the remaining stages.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from demopack.collector import AssetManifest, collect_assets
from demopack.compressor import ArtifactCompressor, PngHybridCompressor
from demopack.errors import BuildError, BuildStageError, ScriptCompilationError
from demopack.metadata import build_metadata
from demopack.optimizer import ImageOptimizer
from demopack.packer import PackedArtifacts, pack_artifacts, render_preamble
from demopack.script_compiler import (
    ClosureCompiler,
    CompileResult,
    CompileStatus,
    ScriptCompiler,
    read_sources,
)
from demopack.settings import (
    ProjectSettings,
    engine_metadata,
    generate_settings_module,
    load_project_settings,
)
from demopack.shadergen import ShaderManifest, generate_shader_manifest


logger = logging.getLogger(__name__)

ENGINE_DIR = Path(__file__).resolve().parent / "engine"

ASSET_MODULE = "files.js"
SETTINGS_MODULE = "settings.js"
SHADER_MODULE = "shaders.js"


@dataclass(frozen=True)
class ProjectLayout:
    root: Path

    @property
    def assets(self) -> Path:
        return self.root / "res"

    @property
    def src(self) -> Path:
        return self.root / "src"

    @property
    def shaders(self) -> Path:
        return self.src / "shaders"

    @property
    def lib(self) -> Path:
        return self.root / "lib"

    @property
    def gen(self) -> Path:
        return self.root / "gen"

    @property
    def bin(self) -> Path:
        return self.root / "bin"

    @property
    def template(self) -> Path:
        return self.root / "index.html"


def script_sources(layout: ProjectLayout, engine_dir: Path) -> List[Path]:
    """Script files in compilation order.

    Engine runtime libraries, engine core, project libraries, generated
    modules, then the project's own sources. Each group is sorted.
    """
    groups = [
        (engine_dir / "lib", "*.js"),
        (engine_dir, "*.js"),
        (layout.lib, "*.js"),
        (layout.gen, "*.js"),
        (layout.src, "*.js"),
    ]
    paths: List[Path] = []
    for directory, pattern in groups:
        paths.extend(sorted(p for p in directory.glob(pattern) if p.is_file()))
    return paths


@dataclass
class BuildOptions:
    optimize_images: bool = False
    output_dir: Optional[Path] = None
    optimizer: Optional[ImageOptimizer] = None
    compiler: Optional[ScriptCompiler] = None
    compressor: Optional[ArtifactCompressor] = None
    engine_dir: Path = ENGINE_DIR


@dataclass
class BuildContext:
    layout: ProjectLayout
    options: BuildOptions
    manifest: Optional[AssetManifest] = None
    settings: Optional[ProjectSettings] = None
    shaders: Optional[ShaderManifest] = None
    compile_result: Optional[CompileResult] = None
    status: Optional[CompileStatus] = None
    artifacts: Optional[PackedArtifacts] = None
    completed_stages: List[str] = field(default_factory=list)

    @property
    def output_dir(self) -> Path:
        return self.options.output_dir or self.layout.bin


StageFn = Callable[[BuildContext], Awaitable[None]]


@dataclass(frozen=True)
class BuildStage:
    name: str
    run: StageFn


async def collect_stage(ctx: BuildContext) -> None:
    ctx.manifest = await collect_assets(
        ctx.layout.assets,
        optimize_images=ctx.options.optimize_images,
        optimizer=ctx.options.optimizer,
    )


async def prepare_generated_dir_stage(ctx: BuildContext) -> None:
    gen = ctx.layout.gen
    if gen.exists():
        shutil.rmtree(gen)
    gen.mkdir(parents=True)


async def write_asset_manifest_stage(ctx: BuildContext) -> None:
    assert ctx.manifest is not None
    (ctx.layout.gen / ASSET_MODULE).write_text(ctx.manifest.to_module(), encoding="utf-8")


async def generate_settings_stage(ctx: BuildContext) -> None:
    ctx.settings = load_project_settings(ctx.layout.root)
    (ctx.layout.gen / SETTINGS_MODULE).write_text(
        generate_settings_module(ctx.settings), encoding="utf-8"
    )


async def generate_shaders_stage(ctx: BuildContext) -> None:
    ctx.shaders = generate_shader_manifest(
        ctx.layout.shaders, ctx.options.engine_dir / "shaders"
    )
    (ctx.layout.gen / SHADER_MODULE).write_text(ctx.shaders.to_module(), encoding="utf-8")


async def compile_scripts_stage(ctx: BuildContext) -> None:
    compiler = ctx.options.compiler or ClosureCompiler()
    sources = read_sources(script_sources(ctx.layout, ctx.options.engine_dir))
    logger.info("Running script compiler over %d sources", len(sources))
    ctx.compile_result = await compiler.compile(sources)


async def check_diagnostics_stage(ctx: BuildContext) -> None:
    result = ctx.compile_result
    assert result is not None
    ctx.status = result.status
    if ctx.status is CompileStatus.ERRORS:
        for diagnostic in result.errors + result.warnings:
            logger.error("%s", diagnostic)
        raise ScriptCompilationError("Script compilation failed.", result.errors)
    if ctx.status is CompileStatus.WARNINGS:
        logger.warning("Script compiler reported %d warning(s)", len(result.warnings))
        for diagnostic in result.warnings:
            logger.warning("%s", diagnostic)


async def pack_artifacts_stage(ctx: BuildContext) -> None:
    assert ctx.settings is not None and ctx.compile_result is not None
    template_path = ctx.layout.template
    if not template_path.is_file():
        raise BuildError(f"HTML template not found: {template_path}")
    metadata = build_metadata(ctx.settings, engine_metadata())
    preamble = render_preamble(
        template_path.read_text(encoding="utf-8"),
        ctx.settings.google_analytics_id,
        metadata,
    )
    ctx.artifacts = await pack_artifacts(
        ctx.compile_result.compiled_code,
        preamble,
        metadata,
        ctx.output_dir,
        ctx.options.compressor or PngHybridCompressor(),
    )


def default_stages() -> List[BuildStage]:
    return [
        BuildStage("collect-assets", collect_stage),
        BuildStage("prepare-generated-dir", prepare_generated_dir_stage),
        BuildStage("write-asset-manifest", write_asset_manifest_stage),
        BuildStage("generate-settings", generate_settings_stage),
        BuildStage("generate-shaders", generate_shaders_stage),
        BuildStage("compile-scripts", compile_scripts_stage),
        BuildStage("check-diagnostics", check_diagnostics_stage),
        BuildStage("pack-artifacts", pack_artifacts_stage),
    ]


class BuildPipeline:
    """Runs build stages strictly in order, stopping at the first failure."""

    def __init__(
        self,
        project_root: Path,
        options: Optional[BuildOptions] = None,
        stages: Optional[List[BuildStage]] = None,
    ):
        self.layout = ProjectLayout(Path(project_root).resolve())
        self.options = options or BuildOptions()
        self.stages = list(stages) if stages is not None else default_stages()

    async def run(self) -> BuildContext:
        ctx = BuildContext(layout=self.layout, options=self.options)
        for stage in self.stages:
            logger.info("Stage %s", stage.name)
            try:
                await stage.run(ctx)
            except BuildError as exc:
                if exc.stage is None:
                    exc.tag_stage(stage.name)
                logger.error("Stage %s [ERROR]", stage.name)
                raise
            except Exception as exc:
                logger.error("Stage %s [ERROR]", stage.name)
                raise BuildStageError(str(exc) or type(exc).__name__, stage=stage.name) from exc
            ctx.completed_stages.append(stage.name)
            logger.info("Stage %s [OK]", stage.name)
        return ctx


def build_project(project_root: Path, options: Optional[BuildOptions] = None) -> BuildContext:
    """Run the default build pipeline to completion."""
    return asyncio.run(BuildPipeline(project_root, options).run())
