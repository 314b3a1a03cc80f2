"""Resolve Rust crate targets and build, cache and load their rustdoc JSON."""

__version__ = "0.1.0"