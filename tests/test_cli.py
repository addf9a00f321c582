import subprocess
import sys
from pathlib import Path

from demopack.build_demo import _make_compressor, main
from demopack.compressor import CommandCompressor, PngHybridCompressor


ROOT = Path(__file__).resolve().parent.parent


def _run(*args):
    return subprocess.run(
        [sys.executable, "-m", "demopack", *args],
        cwd=ROOT,
        check=False,
        capture_output=True,
        text=True,
    )


def test_cli_build_writes_both_artifacts(demo_project):
    completed = _run("build", str(demo_project), "--compiler", "concat")

    assert completed.returncode == 0, completed.stderr
    assert (demo_project / "bin" / "demo.html").exists()
    assert (demo_project / "bin" / "demo.png.html").exists()
    assert "Successfully compiled" in completed.stdout
    assert "demo.png.html" in completed.stdout


def test_cli_build_exits_non_zero_on_build_error(demo_project):
    (demo_project / "project.json").write_text("[not an object", encoding="utf-8")

    completed = _run("build", str(demo_project), "--compiler", "concat")

    assert completed.returncode == 1
    assert "Build failed: [generate-settings]" in completed.stderr
    assert not (demo_project / "bin").exists()


def test_cli_shaders_prints_generated_module(demo_project, capsys):
    assert main(["shaders", str(demo_project)]) == 0

    out = capsys.readouterr().out
    assert out.startswith("SHADERS={};")
    assert 'SHADERS["glow"]' in out
    assert 'SHADERS["default"]' in out


def test_cli_build_in_process_with_optimization(demo_project, tmp_path):
    out_dir = tmp_path / "out"

    code = main(
        [
            "build",
            str(demo_project),
            "--compiler",
            "concat",
            "--optimize-images",
            "--output",
            str(out_dir),
        ]
    )

    assert code == 0
    assert (out_dir / "demo.html").exists()


def test_compressor_command_keeps_quoted_arguments():
    compressor = _make_compressor('pack-tool --title "My Demo" --level 9')

    assert isinstance(compressor, CommandCompressor)
    assert compressor.command == ["pack-tool", "--title", "My Demo", "--level", "9"]


def test_no_compressor_command_uses_png_hybrid():
    assert isinstance(_make_compressor(None), PngHybridCompressor)
