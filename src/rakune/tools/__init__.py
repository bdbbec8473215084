"""File, build and version-control tools used by the convergence loop."""

from .apply import ApplyResult, TransformationApplier, apply_transformation
from .diagnostics import BuildCommandError, BuildOutcome, DiagnosticsExtractor, extract_diagnostics
from .file_store import (
    ApplyError,
    FileStore,
    OutOfBoundsError,
    PathExistsError,
    PathNotFoundError,
    UnsafePathError,
    UnsupportedTransformationError,
)
from .instructions import InstructionParser, MalformedBlockError, NoMatchError, ParseError, parse_transformations
from .vcs import GitError, GitRepository, VersionControl

__all__ = [
    "ApplyError",
    "ApplyResult",
    "BuildCommandError",
    "BuildOutcome",
    "DiagnosticsExtractor",
    "FileStore",
    "GitError",
    "GitRepository",
    "InstructionParser",
    "MalformedBlockError",
    "NoMatchError",
    "OutOfBoundsError",
    "ParseError",
    "PathExistsError",
    "PathNotFoundError",
    "TransformationApplier",
    "UnsafePathError",
    "UnsupportedTransformationError",
    "VersionControl",
    "apply_transformation",
    "extract_diagnostics",
    "parse_transformations",
]
