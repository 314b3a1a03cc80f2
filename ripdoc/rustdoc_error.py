"""Turn rustdoc build failures into readable error messages."""

from __future__ import annotations

from collections import deque

from ripdoc import toolchain
from ripdoc.errors import GenerateError, RipdocError
from ripdoc.rustdoc_build import RustdocFailedError

MAX_STDERR_CHARS = 8_192
"""Maximum number of characters of rustdoc stderr included in failure reports."""

_UNSTABLE_FEATURES = (
    "Failed to build rustdoc JSON: This crate or its dependencies use unstable "
    "features that are not compatible with your current nightly toolchain.\n"
)

_SUPPRESSED_ERRORS = ("Compilation failed", "could not compile", "could not document")

_CONTEXT_PREFIXES = (
    "-->",
    "note:",
    "help:",
    "warning:",
    "= note:",
    "= help:",
    "= warning:",
)


def _decode(data: bytes | str) -> str:
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")


def _mentions_unstable_features(text: str) -> bool:
    return "unknown feature" in text or "E0635" in text


def map_rustdoc_build_error(
    err: Exception, captured_stderr: bytes | str, silent: bool
) -> RipdocError:
    """Translate a rustdoc build failure into a user-facing error."""
    if isinstance(err, RustdocFailedError):
        return format_rustdoc_failure(captured_stderr, silent)

    err_msg = str(err)
    stderr_text = _decode(captured_stderr)

    if "toolchain" in err_msg and "is not installed" in err_msg:
        if toolchain.is_rustup_available():
            install_msg = "run 'rustup toolchain install nightly'"
        else:
            install_msg = "ensure nightly Rust is installed and available in PATH"
        return GenerateError(
            f"ripdoc requires the nightly toolchain to be installed - {install_msg}"
        )

    if _mentions_unstable_features(stderr_text):
        return GenerateError(f"{_UNSTABLE_FEATURES}\nOriginal error: {err_msg}")

    if "Failed to build rustdoc JSON" in err_msg:
        return format_rustdoc_failure(captured_stderr, silent)

    return GenerateError(f"Failed to build rustdoc JSON: {err_msg}")


def format_rustdoc_failure(captured_stderr: bytes | str, silent: bool) -> RipdocError:
    """Describe a failed rustdoc run, embedding diagnostics when running silently."""
    stderr_trimmed = _decode(captured_stderr).strip()

    if _mentions_unstable_features(stderr_trimmed):
        return GenerateError(_UNSTABLE_FEATURES)

    summary = extract_primary_diagnostic(stderr_trimmed)
    if summary is None:
        summary = (
            "rustdoc exited with an error; rerun with --verbose for full diagnostics."
        )
    summary = summary.strip()

    if not silent:
        return GenerateError(f"Failed to build rustdoc JSON: {summary}")

    if not stderr_trimmed:
        return GenerateError(
            "Failed to build rustdoc JSON: rustdoc exited with an error but emitted "
            "no diagnostics. Re-run with --verbose or `cargo rustdoc` to inspect the "
            "failure."
        )

    diagnostics, truncated = truncate_diagnostics(stderr_trimmed)
    message = f"Failed to build rustdoc JSON: {summary}\n\nrustdoc stderr:\n{diagnostics}"
    if truncated:
        message += "\n… output truncated …"
    return GenerateError(message)


def _is_context_line(raw: str) -> bool:
    trimmed = raw.rstrip()
    trimmed_start = trimmed.lstrip(" ")
    prefix, sep, _ = trimmed.partition("|")
    is_line_number_block = bool(sep) and all(
        c in "0123456789" for c in prefix.strip()
    )
    return (
        raw.startswith((" ", "\t", "|"))
        or trimmed_start.startswith(_CONTEXT_PREFIXES)
        or is_line_number_block
    )


def extract_primary_diagnostic(stderr: str) -> str | None:
    """Return the first meaningful error diagnostic with its context lines."""
    lines = deque(stderr.splitlines())
    while lines:
        line = lines.popleft()
        if not is_primary_error_line(line):
            continue

        snippet = [line.rstrip()]
        while lines:
            upcoming = lines[0]
            if not upcoming.rstrip():
                lines.popleft()
                break
            if not _is_context_line(upcoming):
                break
            snippet.append(lines.popleft().rstrip())
        return "\n".join(snippet)
    return None


def is_primary_error_line(line: str) -> bool:
    """Return whether a line opens a new primary error diagnostic."""
    trimmed = line.strip()
    if trimmed.startswith("error["):
        return "]" in trimmed[len("error[") :]
    if trimmed.startswith("error:"):
        body = trimmed[len("error:") :].lstrip()
        return not body.startswith(_SUPPRESSED_ERRORS)
    return False


def truncate_diagnostics(stderr: str) -> tuple[str, bool]:
    """Cut diagnostics down to MAX_STDERR_CHARS, reporting whether text was dropped."""
    return stderr[:MAX_STDERR_CHARS], len(stderr) > MAX_STDERR_CHARS