#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import shlex
import sys
from pathlib import Path
from typing import List, Optional

from demopack.compressor import ArtifactCompressor, CommandCompressor, PngHybridCompressor
from demopack.errors import BuildError
from demopack.optimizer import ImageOptimizer, OptiPngOptimizer, PillowOptimizer
from demopack.pipeline import ENGINE_DIR, BuildOptions, ProjectLayout, build_project
from demopack.script_compiler import ClosureCompiler, ConcatCompiler, ScriptCompiler
from demopack.shadergen import generate_shader_manifest


logger = logging.getLogger("demopack")


def _make_compiler(name: str) -> ScriptCompiler:
    if name == "concat":
        return ConcatCompiler()
    return ClosureCompiler()


def _make_optimizer(name: str) -> ImageOptimizer:
    if name == "optipng":
        return OptiPngOptimizer()
    return PillowOptimizer()


def _make_compressor(command: Optional[str]) -> ArtifactCompressor:
    if command:
        return CommandCompressor(shlex.split(command))
    return PngHybridCompressor()


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="demopack",
        description=(
            "Package a demo project (scripts, assets and shaders) into a single "
            "self-contained HTML artifact."
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug output.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Build bin/demo.html and bin/demo.png.html.")
    build.add_argument("project", help="Path to the project root directory.")
    build.add_argument(
        "--optimize-images",
        action="store_true",
        help="Losslessly optimize PNG assets before embedding them.",
    )
    build.add_argument(
        "--optimizer",
        choices=("pillow", "optipng"),
        default="pillow",
        help="Image optimizer used with --optimize-images.",
    )
    build.add_argument(
        "--compiler",
        choices=("closure", "concat"),
        default="closure",
        help=(
            "Script compiler. 'closure' runs google-closure-compiler through npx; "
            "'concat' joins sources unchanged."
        ),
    )
    build.add_argument(
        "--compressor-command",
        default=None,
        help="External command producing the compressed artifact (reads JSON on stdin).",
    )
    build.add_argument(
        "--output",
        default=None,
        help="Directory where artifacts are written (defaults to <project>/bin).",
    )

    shaders = subparsers.add_parser("shaders", help="Print the generated shader module.")
    shaders.add_argument("project", help="Path to the project root directory.")
    return parser.parse_args(argv)


def _run_build(args: argparse.Namespace) -> int:
    options = BuildOptions(
        optimize_images=args.optimize_images,
        output_dir=Path(args.output).resolve() if args.output else None,
        optimizer=_make_optimizer(args.optimizer),
        compiler=_make_compiler(args.compiler),
        compressor=_make_compressor(args.compressor_command),
    )
    try:
        ctx = build_project(Path(args.project), options)
    except BuildError as exc:
        logger.error("Build failed: %s", exc)
        return 1

    assert ctx.artifacts is not None
    print(f"Successfully compiled {ctx.artifacts.html_path}")
    print(f"Successfully compiled {ctx.artifacts.hybrid_path}")
    return 0


def _run_shaders(args: argparse.Namespace) -> int:
    layout = ProjectLayout(Path(args.project).resolve())
    try:
        manifest = generate_shader_manifest(layout.shaders, ENGINE_DIR / "shaders")
    except BuildError as exc:
        logger.error("%s", exc)
        return 1
    sys.stdout.write(manifest.to_module())
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.command == "shaders":
        return _run_shaders(args)
    return _run_build(args)


if __name__ == "__main__":
    sys.exit(main())
