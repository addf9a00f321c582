"""Resource collection: turn a project's asset tree into an encoded manifest."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from demopack.errors import AssetCollectionError, OptimizerError
from demopack.jsgen import js_literal
from demopack.optimizer import ImageOptimizer, PillowOptimizer, is_lossless_image


logger = logging.getLogger(__name__)

MANIFEST_GLOBAL = "FILES"


@dataclass(frozen=True)
class EncodedAsset:
    path: str
    content: str
    original_size: int
    stored_size: int

    @property
    def optimized(self) -> bool:
        return self.stored_size < self.original_size

    def decode(self) -> bytes:
        return base64.b64decode(self.content)


class AssetManifest:
    """Mapping from asset-root relative path to base64 encoded content."""

    def __init__(self, assets: Optional[Dict[str, EncodedAsset]] = None):
        self._assets: Dict[str, EncodedAsset] = dict(assets or {})

    def add(self, asset: EncodedAsset) -> None:
        if asset.path in self._assets:
            raise AssetCollectionError(f"Duplicate asset path '{asset.path}'.")
        self._assets[asset.path] = asset

    def __contains__(self, path: object) -> bool:
        return path in self._assets

    def __getitem__(self, path: str) -> str:
        return self._assets[path].content

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._assets))

    def __len__(self) -> int:
        return len(self._assets)

    def keys(self) -> List[str]:
        return sorted(self._assets)

    def asset(self, path: str) -> EncodedAsset:
        return self._assets[path]

    def decode(self, path: str) -> bytes:
        return self._assets[path].decode()

    def as_dict(self) -> Dict[str, str]:
        """Plain ``{path: base64}`` mapping, usable as a loader embedded map."""
        return {path: self._assets[path].content for path in self.keys()}

    def to_module(self) -> str:
        """Render the generated ``files.js`` module.

        Keys are emitted in sorted order so identical trees always produce
        byte-identical modules, whatever order the filesystem walk used.
        """
        lines = [f"{MANIFEST_GLOBAL}={{}};"]
        for path in self.keys():
            lines.append(
                f"{MANIFEST_GLOBAL}[{js_literal(path)}]={json.dumps(self[path])};"
            )
        return "\n".join(lines) + "\n"


def relative_asset_path(file_path: Path, asset_root: Path) -> str:
    return file_path.relative_to(asset_root).as_posix()


def _raise_walk_error(exc: OSError) -> None:
    raise AssetCollectionError(f"Failed to walk asset tree: {exc}") from exc


def list_asset_files(asset_root: Path) -> List[Path]:
    """Return every file below ``asset_root``, without following symlinked dirs."""
    if not asset_root.is_dir():
        raise AssetCollectionError(f"Asset directory not found: {asset_root}")
    files: List[Path] = []
    for dirpath, _, filenames in os.walk(
        asset_root, followlinks=False, onerror=_raise_walk_error
    ):
        for filename in filenames:
            files.append(Path(dirpath) / filename)
    return files


async def _encode_file(
    file_path: Path,
    asset_root: Path,
    optimizer: Optional[ImageOptimizer],
) -> EncodedAsset:
    rel_path = relative_asset_path(file_path, asset_root)
    try:
        raw = file_path.read_bytes()
    except OSError as exc:
        raise AssetCollectionError(f"Failed to read asset {file_path}: {exc}") from exc

    data = raw
    if optimizer is not None and is_lossless_image(rel_path):
        data = await _optimize(rel_path, raw, optimizer)

    logger.info("Assimilated %s", rel_path)
    return EncodedAsset(
        path=rel_path,
        content=base64.b64encode(data).decode("ascii"),
        original_size=len(raw),
        stored_size=len(data),
    )


async def _optimize(rel_path: str, raw: bytes, optimizer: ImageOptimizer) -> bytes:
    try:
        optimized = await optimizer.optimize(raw)
    except OptimizerError as exc:
        logger.warning("Optimizer failed for %s, keeping original bytes: %s", rel_path, exc)
        return raw
    if len(optimized) >= len(raw):
        logger.debug("Optimizer did not shrink %s", rel_path)
        return raw
    saved = len(raw) - len(optimized)
    percentage = round(saved / len(raw) * 100, 2)
    logger.info(
        "Optimized %s: saved %dKB (%s%% reduction)", rel_path, saved // 1024, percentage
    )
    return optimized


async def collect_assets(
    asset_root: Path,
    *,
    optimize_images: bool = False,
    optimizer: Optional[ImageOptimizer] = None,
) -> AssetManifest:
    """Walk ``asset_root`` and build a fresh :class:`AssetManifest`.

    Every file becomes one task; the manifest is only returned once all of
    them, including any image optimization, have finished.

    Args:
        asset_root: Directory holding the project's assets.
        optimize_images: Pipe lossless images through ``optimizer`` first.
        optimizer: Image optimizer to use. Defaults to :class:`PillowOptimizer`
            when ``optimize_images`` is set.

    Raises:
        AssetCollectionError: If the tree cannot be walked or a file read.
    """
    asset_root = Path(asset_root)
    logger.info("Collecting files from %s", asset_root)
    active_optimizer: Optional[ImageOptimizer] = None
    if optimize_images:
        active_optimizer = optimizer or PillowOptimizer()

    files = list_asset_files(asset_root)
    encoded = await asyncio.gather(
        *(_encode_file(path, asset_root, active_optimizer) for path in files)
    )

    manifest = AssetManifest()
    for asset in encoded:
        manifest.add(asset)
    logger.info("Merged %d assimilated files", len(manifest))
    return manifest
