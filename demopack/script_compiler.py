"""Adapters around the external script compiler.

An adapter receives the ordered list of script sources and returns compiled
code together with the diagnostics the compiler reported. It never decides
whether the build continues; :func:`classify` does that.
"""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence


class CompileStatus(Enum):
    SUCCESS = "success"
    WARNINGS = "warnings"
    ERRORS = "errors"


class Severity(Enum):
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class SourceFile:
    path: Path
    src: str


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    message: str
    path: Optional[str] = None
    line: Optional[int] = None

    def __str__(self) -> str:
        location = ""
        if self.path is not None:
            location = f"{self.path}:{self.line}: " if self.line is not None else f"{self.path}: "
        return f"{location}{self.severity.value} - {self.message}"


@dataclass
class CompileResult:
    compiled_code: str
    warnings: List[Diagnostic] = field(default_factory=list)
    errors: List[Diagnostic] = field(default_factory=list)

    @property
    def status(self) -> CompileStatus:
        return classify(self)


def classify(result: CompileResult) -> CompileStatus:
    """Map a compiler response to exactly one status, errors winning over warnings."""
    if result.errors:
        return CompileStatus.ERRORS
    if result.warnings:
        return CompileStatus.WARNINGS
    return CompileStatus.SUCCESS


def read_sources(paths: Sequence[Path]) -> List[SourceFile]:
    return [SourceFile(path=path, src=path.read_text(encoding="utf-8")) for path in paths]


class ScriptCompiler(ABC):
    @abstractmethod
    async def compile(self, sources: Sequence[SourceFile]) -> CompileResult:
        """Compile ``sources`` in order and report diagnostics."""


class ConcatCompiler(ScriptCompiler):
    """Development adapter: joins sources unchanged, never reports diagnostics."""

    async def compile(self, sources: Sequence[SourceFile]) -> CompileResult:
        chunks = [source.src.rstrip() for source in sources]
        return CompileResult(compiled_code="\n".join(chunks) + ("\n" if chunks else ""))


_DIAGNOSTIC_RE = re.compile(
    r"^(?P<path>.+?):(?P<line>\d+):(?:\d+:)?\s+(?P<severity>ERROR|WARNING)\s+-\s+"
    r"(?:\[[^\]]+\]\s+)?(?P<message>.*)$"
)


def parse_closure_diagnostics(stderr: str) -> List[Diagnostic]:
    diagnostics: List[Diagnostic] = []
    for line in stderr.splitlines():
        match = _DIAGNOSTIC_RE.match(line.strip())
        if match is None:
            continue
        diagnostics.append(
            Diagnostic(
                severity=Severity(match.group("severity")),
                message=match.group("message"),
                path=match.group("path"),
                line=int(match.group("line")),
            )
        )
    return diagnostics


class ClosureCompiler(ScriptCompiler):
    """Run google-closure-compiler as a subprocess (``npx`` by default)."""

    def __init__(
        self,
        command: Sequence[str] = ("npx", "google-closure-compiler"),
        *,
        compilation_level: str = "SIMPLE",
        language_out: str = "ECMASCRIPT5",
    ):
        self.command = list(command)
        self.compilation_level = compilation_level
        self.language_out = language_out

    def build_args(self, sources: Sequence[SourceFile]) -> List[str]:
        args = list(self.command)
        args.extend(["--compilation_level", self.compilation_level])
        args.extend(["--language_out", self.language_out])
        args.extend(["--warning_level", "DEFAULT"])
        for source in sources:
            args.extend(["--js", str(source.path)])
        return args

    async def compile(self, sources: Sequence[SourceFile]) -> CompileResult:
        args = self.build_args(sources)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            return CompileResult(
                compiled_code="",
                errors=[Diagnostic(Severity.ERROR, f"Compiler not found: {exc}")],
            )
        stdout, stderr = await proc.communicate()
        stderr_text = stderr.decode("utf-8", errors="replace")
        diagnostics = parse_closure_diagnostics(stderr_text)
        result = CompileResult(
            compiled_code=stdout.decode("utf-8"),
            warnings=[d for d in diagnostics if d.severity is Severity.WARNING],
            errors=[d for d in diagnostics if d.severity is Severity.ERROR],
        )
        if proc.returncode != 0 and not result.errors:
            message = stderr_text.strip() or f"exit status {proc.returncode}"
            result.errors.append(Diagnostic(Severity.ERROR, message))
        return result
