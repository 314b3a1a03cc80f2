"""Command-line helpers: toolchain checks, search fallback and output formatting."""

from __future__ import annotations

import subprocess

from ripdoc import toolchain
from ripdoc.errors import GenerateError

_BOLD = "\x1b[1m"
_BOLD_RESET = "\x1b[0m"
_BRIGHT_GREEN = "\x1b[92m"
_FG_RESET = "\x1b[39m"

_NIGHTLY_HINT = "Ensure nightly Rust is installed and available in PATH."


def _emphasise(text: str) -> str:
    return f"{_BOLD}{_BRIGHT_GREEN}{text}{_FG_RESET}{_BOLD_RESET}"


def highlight_matches(text: str, query: str, case_sensitive: bool) -> str:
    """Highlight every occurrence of ``query`` in ``text`` with terminal colours."""
    if not query:
        return text

    search_text = text if case_sensitive else text.lower()
    search_query = query if case_sensitive else query.lower()

    pieces: list[str] = []
    last_end = 0
    search_start = 0
    while (pos := search_text.find(search_query, search_start)) != -1:
        pieces.append(text[last_end:pos])
        match_end = pos + len(query)
        pieces.append(_emphasise(text[pos:match_end]))
        last_end = match_end
        search_start = match_end

    pieces.append(text[last_end:])
    return "".join(pieces)


def format_source_location(path: str | None, line: int | None) -> str:
    """Render a source location as ``path[:line]``, or ``-`` when there is none."""
    if path is None:
        return "-"
    if line is not None:
        return f"{path}:{line}"
    return path


def check_nightly_toolchain() -> None:
    """Ensure a nightly Rust toolchain is available, raising GenerateError if not."""
    if toolchain.is_rustup_available():
        try:
            result = subprocess.run(
                ["rustup", "run", "nightly", "rustc", "--version"],
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError as exc:
            raise GenerateError(f"Failed to run rustup: {exc}") from exc
        if result.returncode != 0:
            raise GenerateError(
                "ripdoc requires the nightly toolchain to be installed.\n"
                "Run: rustup toolchain install nightly"
            )
        return

    try:
        result = subprocess.run(
            ["rustc", "--version"], capture_output=True, check=False
        )
    except OSError as exc:
        raise GenerateError(f"Failed to run rustc: {exc}\n{_NIGHTLY_HINT}") from exc

    if result.returncode != 0:
        raise GenerateError(f"ripdoc requires a nightly Rust toolchain.\n{_NIGHTLY_HINT}")

    version = (result.stdout or b"").decode("utf-8", errors="replace")
    if "nightly" not in version:
        raise GenerateError(
            "ripdoc requires a nightly Rust toolchain, but found: "
            f"{version.strip()}\n{_NIGHTLY_HINT}"
        )


def run_cargo_search_fallback(term: str, offline: bool) -> None:
    """Run ``cargo search`` for ``term`` when no query was given."""
    if offline:
        raise GenerateError(
            "--offline cannot be used with cargo search fallback. "
            "Please provide a query or re-run without --offline."
        )

    try:
        result = subprocess.run(["cargo", "search", term], check=False)
    except OSError as exc:
        raise GenerateError(f"Failed to invoke cargo search: {exc}") from exc

    if result.returncode != 0:
        code = result.returncode if result.returncode >= 0 else -1
        raise GenerateError(f"`cargo search {term}` failed with exit code {code}")