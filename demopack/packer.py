from __future__ import annotations

import html
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from demopack.compressor import ArtifactCompressor
from demopack.metadata import ArtifactMetadata


logger = logging.getLogger(__name__)

ANALYTICS_MARKER = "DEMOPACK_WILL_REPLACE_THIS_TAG_WITH_YOUR_ANALYTICS_ID"
COMMENT_TAGS_MARKER = "DEMOPACK_WILL_REPLACE_THIS_TAG_WITH_AUTOGENERATED_COMMENT_TAGS"
META_TAGS_MARKER = "DEMOPACK_WILL_REPLACE_THIS_TAG_WITH_AUTOGENERATED_META_TAGS"

HTML_ARTIFACT_NAME = "demo.html"
HYBRID_ARTIFACT_NAME = "demo.png.html"
GRAPH_ASSET = "graph.json"

# Order matters: generated code reads these while it is being evaluated.
RUNTIME_GLOBALS = (
    ("GU", "1"),
    ("BEAN", "0"),
    ("BEAT", "false"),
)


@dataclass(frozen=True)
class PackedArtifacts:
    html_path: Path
    hybrid_path: Path


def metadata_comment_tags(metadata: ArtifactMetadata) -> str:
    return "\n".join(
        f"<!-- {key}: {value} -->" for key, value in metadata.comment_items().items()
    )


def open_graph_tags(metadata: ArtifactMetadata) -> str:
    return "\n".join(
        [
            f'<meta property="og:title" content="{html.escape(metadata.title)}" />',
            f'<meta property="og:description" content="{html.escape(metadata.description)}" />',
            f'<meta property="og:image" content="{html.escape(metadata.preview_image)}" />',
            f'<meta name="author" content="{html.escape(metadata.author)}" />',
        ]
    )


def render_preamble(template: str, analytics_id: str, metadata: ArtifactMetadata) -> str:
    """Substitute the analytics, comment and open-graph markers of ``template``."""
    return (
        template.replace(ANALYTICS_MARKER, analytics_id)
        .replace(COMMENT_TAGS_MARKER, metadata_comment_tags(metadata))
        .replace(META_TAGS_MARKER, open_graph_tags(metadata))
    )


def runtime_script(compiled_code: str, *, graph_asset: str = GRAPH_ASSET) -> str:
    """Wrap compiled code with the runtime globals and the bootstrap call."""
    prelude = "".join(f"{name}={value};" for name, value in RUNTIME_GLOBALS)
    bootstrap = (
        f"var graph=JSON.parse(decodeText(FILES[{json.dumps(graph_asset)}]));"
        "demo=bootstrap({graph:graph,onprogress:ONPROGRESS,oncomplete:ONCOMPLETE});"
    )
    return prelude + compiled_code + "\n" + bootstrap


def html_artifact(preamble: str, script: str) -> str:
    return f"{preamble}<script>{script}</script>"


async def pack_artifacts(
    compiled_code: str,
    preamble: str,
    metadata: ArtifactMetadata,
    output_dir: Path,
    compressor: ArtifactCompressor,
) -> PackedArtifacts:
    """Write the plain HTML artifact and the compressed hybrid artifact."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    script = runtime_script(compiled_code)

    html_path = output_dir / HTML_ARTIFACT_NAME
    html_path.write_text(html_artifact(preamble, script), encoding="utf-8")
    logger.info("Wrote %s", html_path)

    logger.info("Compressing demo to %s", HYBRID_ARTIFACT_NAME)
    hybrid_path = output_dir / HYBRID_ARTIFACT_NAME
    hybrid_path.write_bytes(await compressor.compress(script, preamble, metadata))
    logger.info("Wrote %s", hybrid_path)

    return PackedArtifacts(html_path=html_path, hybrid_path=hybrid_path)
