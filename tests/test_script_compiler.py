import asyncio
import sys
import textwrap
from pathlib import Path

from demopack.script_compiler import (
    ClosureCompiler,
    CompileResult,
    CompileStatus,
    ConcatCompiler,
    Diagnostic,
    Severity,
    SourceFile,
    classify,
    parse_closure_diagnostics,
    read_sources,
)


def test_classify_picks_exactly_one_status():
    warning = Diagnostic(Severity.WARNING, "unused")
    error = Diagnostic(Severity.ERROR, "parse error")

    assert classify(CompileResult("code")) is CompileStatus.SUCCESS
    assert classify(CompileResult("code", warnings=[warning])) is CompileStatus.WARNINGS
    assert classify(CompileResult("", errors=[error])) is CompileStatus.ERRORS
    assert (
        classify(CompileResult("", warnings=[warning], errors=[error]))
        is CompileStatus.ERRORS
    )


def test_parse_closure_diagnostics_reads_path_line_and_severity():
    stderr = textwrap.dedent(
        """\
        src/a.js:3:4: WARNING - [JSC_UNUSED_LOCAL] unused variable x
          var x = 1;
              ^
        src/b.js:10: ERROR - Parse error. missing ; before statement
        1 error(s), 1 warning(s)
        """
    )

    diagnostics = parse_closure_diagnostics(stderr)

    assert diagnostics == [
        Diagnostic(Severity.WARNING, "unused variable x", "src/a.js", 3),
        Diagnostic(Severity.ERROR, "Parse error. missing ; before statement", "src/b.js", 10),
    ]
    assert str(diagnostics[1]) == (
        "src/b.js:10: ERROR - Parse error. missing ; before statement"
    )


def test_concat_compiler_keeps_source_order(tmp_path):
    first = tmp_path / "b.js"
    second = tmp_path / "a.js"
    first.write_text("var B = 1;\n\n", encoding="utf-8")
    second.write_text("var A = 2;", encoding="utf-8")

    result = asyncio.run(ConcatCompiler().compile(read_sources([first, second])))

    assert result.compiled_code == "var B = 1;\nvar A = 2;\n"
    assert result.status is CompileStatus.SUCCESS


def test_closure_compiler_passes_sources_in_order():
    compiler = ClosureCompiler(command=["closure"])
    sources = [SourceFile(Path("x.js"), ""), SourceFile(Path("y.js"), "")]

    args = compiler.build_args(sources)

    assert args[0] == "closure"
    assert args[-4:] == ["--js", "x.js", "--js", "y.js"]
    assert "SIMPLE" in args


def test_closure_compiler_reports_missing_executable_as_error():
    compiler = ClosureCompiler(command=["demopack-no-such-compiler-binary"])

    result = asyncio.run(compiler.compile([]))

    assert result.status is CompileStatus.ERRORS
    assert "Compiler not found" in result.errors[0].message


def _fake_compiler(tmp_path, body):
    script = tmp_path / "fake_closure.py"
    script.write_text(textwrap.dedent(body), encoding="utf-8")
    return ClosureCompiler(command=[sys.executable, str(script)])


def test_closure_compiler_collects_output_and_warnings(tmp_path):
    compiler = _fake_compiler(
        tmp_path,
        """
        import sys
        sys.stdout.write("var a=1;\\n")
        sys.stderr.write("main.js:1: WARNING - dangerous use of this\\n")
        """,
    )

    result = asyncio.run(compiler.compile([SourceFile(Path("main.js"), "")]))

    assert result.compiled_code == "var a=1;\n"
    assert result.status is CompileStatus.WARNINGS
    assert result.warnings[0].message == "dangerous use of this"


def test_closure_compiler_failure_without_parsable_output_is_an_error(tmp_path):
    compiler = _fake_compiler(
        tmp_path,
        """
        import sys
        sys.stderr.write("java.lang.OutOfMemoryError\\n")
        sys.exit(3)
        """,
    )

    result = asyncio.run(compiler.compile([]))

    assert result.status is CompileStatus.ERRORS
    assert "OutOfMemoryError" in result.errors[0].message
