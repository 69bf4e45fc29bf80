"""Split a workflow markdown file into its YAML frontmatter and body."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

_DELIMITER = "---"


@dataclass(frozen=True)
class FrontmatterDocument:
    frontmatter: dict[str, Any] = field(default_factory=dict)
    markdown: str = ""
    has_frontmatter: bool = False


def _coerce_on_key(payload: dict[Any, Any]) -> dict[str, Any]:
    # YAML 1.1 reads a bare `on:` key as boolean True.
    if True in payload and "on" not in payload:
        payload = dict(payload)
        payload["on"] = payload.pop(True)
    return {str(key): value for key, value in payload.items()}


def parse_frontmatter(text: str, *, source: str = "<string>") -> FrontmatterDocument:
    if not isinstance(text, str):
        raise TypeError(f"{source} content must be a string (type={type(text).__name__})")

    lines = text.splitlines()
    if not lines or lines[0].strip() != _DELIMITER:
        return FrontmatterDocument(markdown=text)

    end_index = None
    for idx in range(1, len(lines)):
        if lines[idx].strip() == _DELIMITER:
            end_index = idx
            break
    if end_index is None:
        raise ValueError(f"Unterminated frontmatter in {source}: missing closing '{_DELIMITER}'")

    raw_yaml = "\n".join(lines[1:end_index])
    try:
        payload = yaml.safe_load(raw_yaml)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML frontmatter in {source}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValueError(
            f"Frontmatter in {source} must be a YAML mapping (type={type(payload).__name__})"
        )

    markdown = "\n".join(lines[end_index + 1 :]).lstrip("\n")
    return FrontmatterDocument(
        frontmatter=_coerce_on_key(dict(payload)),
        markdown=markdown,
        has_frontmatter=True,
    )


def read_frontmatter_file(path: str) -> FrontmatterDocument:
    with open(path, "r", encoding="utf-8") as handle:
        return parse_frontmatter(handle.read(), source=path)
