import io
import json
import textwrap
from pathlib import Path

import pytest
from PIL import Image


TEMPLATE = textwrap.dedent(
    """\
    <!doctype html>
    <html>
    <head>
    DEMOPACK_WILL_REPLACE_THIS_TAG_WITH_AUTOGENERATED_COMMENT_TAGS
    DEMOPACK_WILL_REPLACE_THIS_TAG_WITH_AUTOGENERATED_META_TAGS
    <script>var GA_ID = "DEMOPACK_WILL_REPLACE_THIS_TAG_WITH_YOUR_ANALYTICS_ID";</script>
    <script>function ONPROGRESS(p) {} function ONCOMPLETE(r) {}</script>
    </head>
    <body>
    """
)


def _png_bytes(size=(16, 8), color=(200, 40, 40), compress_level=0) -> bytes:
    out = io.BytesIO()
    Image.new("RGB", size, color).save(out, format="PNG", compress_level=compress_level)
    return out.getvalue()


@pytest.fixture
def make_png():
    return _png_bytes


@pytest.fixture
def demo_project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "res" / "img").mkdir(parents=True)
    (root / "src" / "shaders" / "glow").mkdir(parents=True)
    (root / "lib").mkdir()

    (root / "project.json").write_text(
        json.dumps(
            {
                "title": "Tom & Jerry",
                "authors": ["alice", "bob"],
                "description": "A demo",
                "previewImage": "https://example.org/preview.png",
                "googleAnalyticsID": "UA-1234",
                "version": "1.2.3",
                "origin": "git@example.org:demo.git",
                "music": {"bpm": 120},
            }
        ),
        encoding="utf-8",
    )
    (root / "index.html").write_text(TEMPLATE, encoding="utf-8")
    (root / "res" / "graph.json").write_text(
        json.dumps({"assets": ["notes.txt"], "textures": ["img/logo.png"]}),
        encoding="utf-8",
    )
    (root / "res" / "notes.txt").write_text("hello demo\n", encoding="utf-8")
    (root / "res" / "img" / "logo.png").write_bytes(_png_bytes())
    (root / "src" / "main.js").write_text("var MAIN = 1;\n", encoding="utf-8")
    (root / "lib" / "helper.js").write_text("var HELPER = 2;\n", encoding="utf-8")
    (root / "src" / "shaders" / "glow" / "fragment.glsl").write_text(
        "void main() { gl_FragColor = vec4(1.0); }\n", encoding="utf-8"
    )
    return root
