from typing import List, Optional, Sequence


def _format_with_stage(message: str, *, stage: Optional[str] = None) -> str:
    if stage is None:
        return message
    return f"[{stage}] {message}"


def format_diagnostics(diagnostics: Sequence[object]) -> str:
    """Join compiler diagnostics into one newline separated block."""
    return "\n".join(str(diagnostic) for diagnostic in diagnostics)


class BuildError(Exception):
    """Base build error."""

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(_format_with_stage(message, stage=stage))
        self.message = message
        self.stage = stage

    def tag_stage(self, stage: str) -> None:
        """Attach the failing stage and prefix the message with it."""
        self.stage = stage
        self.args = (_format_with_stage(self.message, stage=stage),)


class AssetCollectionError(BuildError):
    """Raised when the asset tree cannot be walked or read."""


class ShaderGenerationError(BuildError):
    """Raised when a shader artifact cannot be resolved anywhere."""


class SettingsError(BuildError):
    """Raised when project settings are missing or malformed."""


class ScriptCompilationError(BuildError):
    """Raised when the script compiler reports errors."""

    def __init__(
        self,
        message: str,
        diagnostics: Sequence[object] = (),
        *,
        stage: Optional[str] = None,
    ):
        details = format_diagnostics(diagnostics)
        super().__init__(f"{message}\n{details}" if details else message, stage=stage)
        self.diagnostics: List[object] = list(diagnostics)


class BuildStageError(BuildError):
    """Wraps any unexpected failure raised while a build stage runs."""


class OptimizerError(Exception):
    """Raised by an image optimizer that could not process its input."""


class CompressorError(Exception):
    """Raised when the artifact compressor fails."""


class LoaderError(Exception):
    """Base runtime loader error."""


class LoaderStateError(LoaderError):
    """Raised when a batch is used outside the state that allows the call."""


class AssetNotFoundError(LoaderError):
    """Raised when an embedded asset map has no entry for a requested path."""

    def __init__(self, path: str):
        super().__init__(f"Asset not found in embedded files: {path}")
        self.path = path
