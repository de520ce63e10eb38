"""
Tests for PEP 561 py.typed marker file.
"""

from pathlib import Path

PY_TYPED = Path(__file__).parent.parent / "src" / "vacancy" / "py.typed"


def test_py_typed_marker_exists():
    """The package ships a py.typed marker so type checkers use its annotations."""
    assert PY_TYPED.exists(), f"py.typed marker file not found at {PY_TYPED}"
    assert PY_TYPED.is_file(), f"{PY_TYPED} should be a file, not a directory"


def test_py_typed_marker_content():
    content = PY_TYPED.read_text()

    # Empty means fully typed; "partial\n" would mean partially typed.
    assert content in ("", "partial\n"), (
        f"py.typed should be empty or contain 'partial\\n', got: {repr(content)}"
    )
