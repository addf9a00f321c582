"""Lossless image optimizers used by the resource collector.

Optimizers receive the raw bytes of one image and return the optimized bytes.
They run as independent asyncio tasks, one per file, and signal failure with
:class:`~demopack.errors.OptimizerError`.
"""

from __future__ import annotations

import asyncio
import io
import shutil
import struct
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

from PIL import Image, UnidentifiedImageError

from demopack.errors import OptimizerError


LOSSLESS_IMAGE_EXTENSIONS = frozenset({".png"})
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def is_lossless_image(path: str) -> bool:
    return Path(path).suffix.lower() in LOSSLESS_IMAGE_EXTENSIONS


def png_bit_depth(data: bytes) -> int:
    """Return the per-sample bit depth declared in a PNG's IHDR chunk."""
    # Signature, chunk length, b"IHDR", width, height, then the depth byte.
    if len(data) < 25 or not data.startswith(PNG_SIGNATURE) or data[12:16] != b"IHDR":
        raise OptimizerError("Data is not a PNG with a leading IHDR chunk")
    (depth,) = struct.unpack(">B", data[24:25])
    return depth


class ImageOptimizer(ABC):
    @abstractmethod
    async def optimize(self, data: bytes) -> bytes:
        """Return a losslessly optimized copy of ``data``."""


class PillowOptimizer(ImageOptimizer):
    """Re-encode PNG data with zlib level 9 and Pillow's ``optimize`` pass."""

    async def optimize(self, data: bytes) -> bytes:
        return await asyncio.to_thread(self._optimize_sync, data)

    @staticmethod
    def _optimize_sync(data: bytes) -> bytes:
        source_depth = png_bit_depth(data)
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                out = io.BytesIO()
                params = {"optimize": True, "compress_level": 9}
                if "transparency" in img.info:
                    params["transparency"] = img.info["transparency"]
                img.save(out, format="PNG", **params)
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise OptimizerError(f"Pillow could not optimize image: {exc}") from exc
        optimized = out.getvalue()
        # Pillow reads 16-bit RGB(A) as 8-bit modes, which would drop precision.
        if source_depth > 8 and png_bit_depth(optimized) < source_depth:
            raise OptimizerError(
                f"Pillow cannot keep {source_depth}-bit samples for this image"
            )
        return optimized


class OptiPngOptimizer(ImageOptimizer):
    """Run the external ``optipng`` binary over a temporary copy of the data."""

    def __init__(self, executable: str = "optipng", args: Sequence[str] = ("-o7",)):
        self.executable = executable
        self.args = list(args)

    async def optimize(self, data: bytes) -> bytes:
        binary = shutil.which(self.executable)
        if binary is None:
            raise OptimizerError(f"'{self.executable}' was not found on PATH")

        with tempfile.TemporaryDirectory(prefix="demopack-optipng-") as tmp:
            src = Path(tmp) / "in.png"
            dst = Path(tmp) / "out.png"
            src.write_bytes(data)
            proc = await asyncio.create_subprocess_exec(
                binary,
                *self.args,
                "-quiet",
                "-out",
                str(dst),
                str(src),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()
            if proc.returncode != 0:
                message = stderr.decode("utf-8", errors="replace").strip()
                raise OptimizerError(
                    f"optipng exited with status {proc.returncode}: {message}"
                )
            if not dst.exists():
                raise OptimizerError("optipng produced no output file")
            return dst.read_bytes()
