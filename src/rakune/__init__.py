"""Instruction-driven code editing that iterates until the build succeeds."""

from .orchestrator import ConvergenceError, ConvergenceLoop, ErrorKind, LoopResult
from .structured import Comment, Diagnostic, Fragment

__all__ = [
    "Comment",
    "ConvergenceError",
    "ConvergenceLoop",
    "Diagnostic",
    "ErrorKind",
    "Fragment",
    "LoopResult",
]

__version__ = "0.1.0"
