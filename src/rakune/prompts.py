"""Prompt templates and context rendering for the oracle."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from .structured import Comment, Diagnostic, Fragment
from .tools.file_store import ApplyError, FileStore

LOGGER = logging.getLogger(__name__)

_LANGUAGE_MARKERS: tuple[tuple[str, str], ...] = (
    ("Cargo.toml", "Rust"),
    ("pyproject.toml", "Python"),
    ("setup.py", "Python"),
    ("go.mod", "Go"),
    ("package.json", "JavaScript"),
    ("pom.xml", "Java"),
    ("build.gradle", "Java"),
    ("CMakeLists.txt", "C++"),
)

EDIT_TEMPLATE = """\
```
UpdateFragment:
    filepath: the path to the file being changed (string)
    start_line: the first line to replace, counting from 0 (int)
    end_line: the line after the last line to replace (int)
    content: the code that replaces those lines (string)
```"""

OTHER_TEMPLATES = """\
To add lines without replacing any, use:

```
InsertFragment:
    filepath: the path to the file being changed (string)
    line_no: the line to insert before, counting from 0 (int)
    content: the code to insert (string)
```

To create or delete a file, or to move a file or rename an identifier everywhere, use:

```
CreateFile:
    path: the new file (string)
DeleteFile:
    path: the file to remove (string)
MoveFile:
    old: the current path (string)
    new: the new path (string)
RenameSymbol:
    old: the current identifier (string)
    new: the new identifier (string)
```"""

EXAMPLES = """\
## Here are a couple of examples:

Update the function foo to print "hello!"

src/hello.rs
>>>>
0 fn foo() {
1     println!("chili dogs")
2 }
<<<<

```
UpdateFragment:
    filepath: src/hello.rs
    start_line: 1
    end_line: 2
    content:     println!("hello!")
```

---

Remove the unneeded code in add_5().

src/addition.rs
>>>>
0 fn add_5(x: u8) -> u8 {
1   let ans = x + 5;
2   return ans;
3 }
<<<<

```
UpdateFragment:
    filepath: src/addition.rs
    start_line: 1
    end_line: 3
    content:   return x + 5;
```"""

SUMMARY_INSTRUCTION = "summarize the following diff as a commit message in less than 20 words:"


def detect_language(repo_root: Path | str) -> str:
    """Guess the project language from marker files in ``repo_root``."""
    root = Path(repo_root)
    for marker, language in _LANGUAGE_MARKERS:
        if (root / marker).exists():
            return language
    return "software"


def template_code(request: str, *, language: str) -> str:
    """Instruction prompt asking the oracle for edit blocks."""
    return (
        f"You are a {language} programmer. {request.strip()}\n\n"
        "Please use the following template to describe where to update the code:\n\n"
        f"{EDIT_TEMPLATE}\n\n"
        f"{OTHER_TEMPLATES}\n\n"
        "Line numbers count from 0 and end_line is exclusive. "
        "You may answer with several blocks; each one must end with a ``` line. "
        "Do NOT provide any extra content beyond these templates.\n\n"
        f"{EXAMPLES}\n"
    )


def template_debug(diagnostic_message: str) -> str:
    """Wrap a build error into a follow-up request."""
    return f"fix this build error:\n\n{diagnostic_message}"


def comment_from_diagnostic(diagnostic: Diagnostic) -> Comment:
    """Turn the diagnostic into a comment anchored on its one-line span."""
    message = f"{diagnostic.message}\n --> {diagnostic.location()}"
    return Comment(message=template_debug(message), fragments=[diagnostic.fragment()])


def template_summary(diff: str) -> str:
    return f"{SUMMARY_INSTRUCTION}\n\n{diff}"


def render_fragment(store: FileStore, fragment: Fragment, *, surround: int) -> str | None:
    """Render the current lines around ``fragment`` with zero-based numbers.

    Returns ``None`` when the file is missing, unreadable or outside the tree.
    """
    try:
        total = store.line_count(fragment.filepath)
        if not 0 <= fragment.start <= fragment.end <= total:
            LOGGER.warning(
                "Fragment %s no longer fits %s (%d line(s)); showing the nearest lines",
                fragment.describe(),
                fragment.filepath,
                total,
            )
        start = max(min(fragment.start, total) - surround, 0)
        end = min(max(fragment.end, fragment.start) + surround, total)
        window = store.read_fragment(Fragment(filepath=fragment.filepath, line_range=(start, end)))
    except (ApplyError, OSError, UnicodeDecodeError) as error:
        LOGGER.warning("Cannot render context for %s: %s", fragment.describe(), error)
        return None

    numbered = "\n".join(f"{index} {line}" for index, line in enumerate(window, start=start))
    return f"{fragment.filepath}\n>>>>\n{numbered}\n<<<<"


def render_context(
    store: FileStore,
    fragments: Sequence[Fragment],
    *,
    surround: int,
    temporal: Sequence[str] = (),
) -> str:
    """Assemble the context section appended to an instruction prompt."""
    sections: list[str] = [entry for entry in temporal if entry.strip()]
    for fragment in fragments:
        rendered = render_fragment(store, fragment, surround=surround)
        if rendered is not None:
            sections.append(f"The existing lines of code are:\n\n{rendered}")
    if not sections:
        return ""
    return "\n### Here is the current context:\n\n" + "\n\n".join(sections) + "\n"


__all__ = [
    "EDIT_TEMPLATE",
    "SUMMARY_INSTRUCTION",
    "comment_from_diagnostic",
    "detect_language",
    "render_context",
    "render_fragment",
    "template_code",
    "template_debug",
    "template_summary",
]
