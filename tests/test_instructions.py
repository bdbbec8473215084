from __future__ import annotations

import textwrap

import pytest

from conftest import update_block
from rakune.structured import (
    CreateFile,
    DeleteFile,
    Fragment,
    InsertFragment,
    MoveFile,
    RenameSymbol,
    UpdateFragment,
)
from rakune.tools.instructions import (
    InstructionParser,
    MalformedBlockError,
    NoMatchError,
    parse_transformations,
)


def test_blocks_are_returned_in_order_of_appearance() -> None:
    answer = "Sure!\n" + update_block("src/a.rs", 0, 1, "x") + "\nand\n" + update_block("src/b.rs", 2, 4, "y", "    z")

    result = parse_transformations(answer)

    assert result == [
        UpdateFragment(fragment=Fragment("src/a.rs", (0, 1)), updated_lines=("x",)),
        UpdateFragment(fragment=Fragment("src/b.rs", (2, 4)), updated_lines=("y", "    z")),
    ]


def test_answer_without_blocks_is_no_match() -> None:
    with pytest.raises(NoMatchError):
        parse_transformations("I am not able to help with that.")
    with pytest.raises(NoMatchError):
        parse_transformations("   \n")


def test_non_integer_line_number_is_malformed() -> None:
    answer = textwrap.dedent(
        """
        UpdateFragment:
            filepath: src/a.rs
            start_line: three
            end_line: 4
            content:
                x
        ```
        """
    )

    with pytest.raises(MalformedBlockError) as excinfo:
        parse_transformations(answer)

    assert excinfo.value.field == "start_line"
    assert excinfo.value.index == 0


def test_lenient_mode_skips_malformed_blocks() -> None:
    bad = update_block("src/a.rs", 0, 1, "x").replace("start_line: 0", "start_line: -1")
    good = update_block("src/b.rs", 1, 2, "y")

    result = InstructionParser(strict=False).parse(bad + good)

    assert result == [UpdateFragment(fragment=Fragment("src/b.rs", (1, 2)), updated_lines=("y",))]


def test_inline_content_keeps_its_indentation() -> None:
    answer = textwrap.dedent(
        """
        ```
        UpdateFragment:
            filepath: src/hello.rs
            start_line: 1
            end_line: 2
            content:     println!("hello!")
        ```
        """
    )

    (transformation,) = parse_transformations(answer)

    assert transformation.updated_lines == ('    println!("hello!")',)


def test_quoted_values_and_trailing_commas_are_accepted() -> None:
    answer = textwrap.dedent(
        """
        UpdateFragment:
            filepath: "src/lib.rs",
            start_line: 3,
            end_line: `5`,
            content:
                let total = a + b;
                total
        ```
        """
    )

    (transformation,) = parse_transformations(answer)

    assert transformation.fragment == Fragment("src/lib.rs", (3, 5))
    assert transformation.updated_lines == ("let total = a + b;", "total")


def test_language_fence_inside_content_is_dropped() -> None:
    answer = textwrap.dedent(
        """
        UpdateFragment:
            filepath: src/lib.rs
            start_line: 0
            end_line: 1
            content:
                ```rust
                fn a() {}
                ```
        """
    )

    (transformation,) = parse_transformations(answer)

    assert transformation.updated_lines == ("fn a() {}",)


def test_empty_content_deletes_lines() -> None:
    answer = textwrap.dedent(
        """
        UpdateFragment:
            filepath: src/lib.rs
            start_line: 2
            end_line: 4
            content:
        ```
        """
    )

    (transformation,) = parse_transformations(answer)

    assert transformation.updated_lines == ()


def test_other_transformation_kinds() -> None:
    answer = textwrap.dedent(
        """
        ```
        InsertFragment:
            filepath: src/lib.rs
            line_no: 0
            content:
                use std::fmt;
        ```

        ```
        CreateFile:
            path: src/new.rs
        DeleteFile:
            path: src/old.rs
        MoveFile:
            old: src/a.rs
            new: src/b.rs
        RenameSymbol:
            old: compute
            new: compute_total
        ```
        """
    )

    assert parse_transformations(answer) == [
        InsertFragment(filepath="src/lib.rs", line_no=0, content=("use std::fmt;",)),
        CreateFile(path="src/new.rs"),
        DeleteFile(path="src/old.rs"),
        MoveFile(old="src/a.rs", new="src/b.rs"),
        RenameSymbol(old="compute", new="compute_total"),
    ]


@pytest.mark.parametrize("value", ["²", "٣", "3.0", "+4"])
def test_only_ascii_decimal_line_numbers_are_accepted(value: str) -> None:
    answer = f"filepath: a.txt\nstart_line: {value}\nend_line: 3\ncontent: x\n```\n"

    with pytest.raises(MalformedBlockError) as excinfo:
        parse_transformations(answer)

    assert excinfo.value.field == "start_line"
