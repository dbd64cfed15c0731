"""Utility helpers for string normalization and path handling."""

from __future__ import annotations

import re

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
FORBIDDEN_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|]')
MAX_FILENAME_CHARS = 100


def slugify(value: str, fallback: str = "page") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback


def sanitize_filename(name: str) -> str:
    """Replace characters invalid in file names and cap the length."""
    result = FORBIDDEN_FILENAME_CHARS.sub("_", name or "")
    result = result.strip()
    return result[:MAX_FILENAME_CHARS]


def build_output_stem(title: str, author: str) -> str:
    title_part = sanitize_filename(title) or "untitled"
    author_part = sanitize_filename(author)
    if not author_part:
        return title_part
    return f"{title_part} - {author_part}"
