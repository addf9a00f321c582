import asyncio
import io
import sys
import textwrap
from datetime import datetime, timezone

import pytest
from PIL import Image

from demopack.compressor import (
    ArtifactCompressor,
    CommandCompressor,
    PngHybridCompressor,
    image_size,
)
from demopack.errors import CompressorError
from demopack.metadata import ArtifactMetadata, build_metadata
from demopack.packer import (
    ANALYTICS_MARKER,
    COMMENT_TAGS_MARKER,
    META_TAGS_MARKER,
    pack_artifacts,
    render_preamble,
    runtime_script,
)
from demopack.settings import EngineMetadata, ProjectSettings


def _metadata(**overrides) -> ArtifactMetadata:
    values = dict(
        title="Tom & Jerry",
        author="alice, bob",
        description='A "demo"',
        creation_time="2026-10-19T12:00:00+00:00",
        software="1.0 @ origin\ndemopack@0.1.0 from ",
        preview_image="https://example.org/p.png",
    )
    values.update(overrides)
    return ArtifactMetadata(**values)


class RecordingCompressor(ArtifactCompressor):
    def __init__(self):
        self.calls = []

    async def compress(self, code, preamble, metadata):
        self.calls.append((code, preamble, metadata))
        return b"hybrid-bytes"


def test_build_metadata_joins_authors_and_software_lines():
    settings = ProjectSettings(
        title="T",
        authors=["alice", "bob"],
        version="1.2.3",
        origin="git@example.org:demo.git",
    )
    engine = EngineMetadata(name="demopack", version="0.1.0", origin="https://example.org")
    now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    metadata = build_metadata(settings, engine, now=now)

    assert metadata.author == "alice, bob"
    assert metadata.creation_time == "2026-10-19T12:00:00+00:00"
    assert metadata.software == (
        "1.2.3 @ git@example.org:demo.git\ndemopack@0.1.0 from https://example.org"
    )


def test_render_preamble_substitutes_all_markers():
    template = f"<head>{COMMENT_TAGS_MARKER}\n{META_TAGS_MARKER}\nga('{ANALYTICS_MARKER}')</head>"

    preamble = render_preamble(template, "UA-42", _metadata())

    assert "DEMOPACK_WILL_REPLACE" not in preamble
    assert "ga('UA-42')" in preamble
    assert "<!-- Title: Tom & Jerry -->" in preamble
    assert "<!-- Author: alice, bob -->" in preamble
    assert '<meta property="og:title" content="Tom &amp; Jerry" />' in preamble
    assert '<meta property="og:description" content="A &quot;demo&quot;" />' in preamble
    assert '<meta name="author" content="alice, bob" />' in preamble


def test_runtime_script_initializes_globals_before_code():
    script = runtime_script("var generated = GU;\n")

    assert script.startswith("GU=1;BEAN=0;BEAT=false;var generated = GU;")
    assert script.index("BEAT=false;") < script.index("var generated")
    assert script.endswith(
        'var graph=JSON.parse(decodeText(FILES["graph.json"]));'
        "demo=bootstrap({graph:graph,onprogress:ONPROGRESS,oncomplete:ONCOMPLETE});"
    )


def test_pack_artifacts_writes_both_outputs(tmp_path):
    compressor = RecordingCompressor()
    output_dir = tmp_path / "bin"

    packed = asyncio.run(
        pack_artifacts("var x=1;", "<html>", _metadata(), output_dir, compressor)
    )

    html = packed.html_path.read_text(encoding="utf-8")
    assert packed.html_path == output_dir / "demo.html"
    assert html.startswith("<html><script>GU=1;BEAN=0;BEAT=false;var x=1;")
    assert html.endswith("</script>")
    assert packed.hybrid_path.read_bytes() == b"hybrid-bytes"
    code, preamble, _ = compressor.calls[0]
    assert code == runtime_script("var x=1;")
    assert preamble == "<html>"


def test_png_hybrid_compressor_stores_payload_as_pixels():
    code = runtime_script("var msg = 'héllo';")

    data = asyncio.run(PngHybridCompressor().compress(code, "<title>x</title>", _metadata()))

    assert data.startswith(b"\x89PNG")
    payload = code.encode("utf-8")
    with Image.open(io.BytesIO(data)) as img:
        assert img.mode == "L"
        assert img.tobytes()[: len(payload)] == payload
        assert img.text["Title"] == "Tom & Jerry"
        assert img.text["html"].startswith("<title>x</title><canvas id=c")
        assert f"new Uint8Array({len(payload)})" in img.text["html"]


def test_image_size_wraps_long_payloads():
    assert image_size(0) == (1, 1)
    assert image_size(10) == (10, 1)
    assert image_size(4096) == (4096, 1)
    assert image_size(5000) == (4096, 2)


def _script(tmp_path, body):
    script = tmp_path / "fake_compressor.py"
    script.write_text(textwrap.dedent(body), encoding="utf-8")
    return [sys.executable, str(script)]


def test_command_compressor_pipes_request_through_command(tmp_path):
    command = _script(
        tmp_path,
        """
        import json, sys
        request = json.load(sys.stdin)
        sys.stdout.write(request["preamble"] + "|" + request["code"] + "|" + request["metadata"]["Title"])
        """,
    )

    data = asyncio.run(CommandCompressor(command).compress("CODE", "PRE", _metadata()))

    assert data == b"PRE|CODE|Tom & Jerry"


def test_command_compressor_failure_raises(tmp_path):
    command = _script(
        tmp_path,
        """
        import sys
        sys.stderr.write("no space left")
        sys.exit(2)
        """,
    )

    with pytest.raises(CompressorError, match="no space left"):
        asyncio.run(CommandCompressor(command).compress("CODE", "PRE", _metadata()))
