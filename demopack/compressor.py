"""Artifact compressors producing the single-file hybrid ``.png.html`` output.

Only the input/output contract matters to the build: a compressor takes the
runtime script, the rendered HTML preamble and the artifact metadata, and
returns the bytes of one self-extracting file.
"""

from __future__ import annotations

import asyncio
import io
import json
import math
from abc import ABC, abstractmethod
from typing import List, Sequence

from PIL import Image
from PIL.PngImagePlugin import PngInfo

from demopack.errors import CompressorError
from demopack.metadata import ArtifactMetadata


MAX_IMAGE_WIDTH = 4096


class ArtifactCompressor(ABC):
    @abstractmethod
    async def compress(
        self, code: str, preamble: str, metadata: ArtifactMetadata
    ) -> bytes:
        """Return the compressed hybrid artifact for ``code``."""


class PngHybridCompressor(ArtifactCompressor):
    """Store the script as grayscale PNG pixels with an HTML unpacker chunk.

    The resulting file is a valid PNG. Opened as HTML, the text chunk renders
    the preamble and an ``<img>`` that loads the file itself, reads the pixels
    back through a canvas and evaluates the decoded script.
    """

    async def compress(
        self, code: str, preamble: str, metadata: ArtifactMetadata
    ) -> bytes:
        return await asyncio.to_thread(self._compress_sync, code, preamble, metadata)

    def _compress_sync(
        self, code: str, preamble: str, metadata: ArtifactMetadata
    ) -> bytes:
        payload = code.encode("utf-8")
        width, height = image_size(len(payload))
        pixels = payload.ljust(width * height, b"\0")
        image = Image.frombytes("L", (width, height), pixels)

        info = PngInfo()
        for key, value in metadata.comment_items().items():
            if value:
                info.add_itxt(key, value)
        info.add_itxt("html", preamble + unpacker_html(len(payload), width, height))

        out = io.BytesIO()
        try:
            image.save(out, format="PNG", optimize=True, pnginfo=info)
        except (OSError, ValueError) as exc:
            raise CompressorError(f"Failed to encode hybrid PNG: {exc}") from exc
        return out.getvalue()


def image_size(payload_length: int) -> tuple[int, int]:
    width = max(1, min(payload_length, MAX_IMAGE_WIDTH))
    height = max(1, math.ceil(payload_length / width))
    return width, height


def unpacker_html(length: int, width: int, height: int) -> str:
    script = (
        "var x=document.getElementById('c').getContext('2d');"
        "x.drawImage(this,0,0);"
        f"var d=x.getImageData(0,0,{width},{height}).data,b=new Uint8Array({length});"
        f"for(var i=0;i<{length};i++)b[i]=d[i*4];"
        "(0,eval)(new TextDecoder().decode(b))"
    )
    return (
        f"<canvas id=c width={width} height={height} style=display:none></canvas>"
        f'<img style=display:none onload="{script}" src=#>'
    )


class CommandCompressor(ArtifactCompressor):
    """Delegate to an external command.

    The command receives ``{"code", "preamble", "metadata"}`` as JSON on stdin
    and must write the artifact bytes to stdout.
    """

    def __init__(self, command: Sequence[str]):
        if not command:
            raise ValueError("Compressor command must not be empty.")
        self.command: List[str] = list(command)

    async def compress(
        self, code: str, preamble: str, metadata: ArtifactMetadata
    ) -> bytes:
        request = json.dumps(
            {
                "code": code,
                "preamble": preamble,
                "metadata": metadata.comment_items(),
            }
        ).encode("utf-8")
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise CompressorError(f"Compressor command not found: {exc}") from exc
        stdout, stderr = await proc.communicate(request)
        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise CompressorError(
                f"Compressor exited with status {proc.returncode}: {message}"
            )
        return stdout
