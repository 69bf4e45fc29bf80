from __future__ import annotations

import argparse
import os
import sys
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class KindDocRow:
    kind: str
    job: str
    doc: str | None
    source: str | None
    tags: tuple[str, ...]


def _normalize_doc(value: object) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def _kind_rows() -> list[KindDocRow]:
    project_root = Path(__file__).resolve().parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

    from agentic_workflows.safe_outputs.catalog import get_safe_output_registry  # noqa: PLC0415

    rows: list[KindDocRow] = []
    for entry in get_safe_output_registry().describe():
        tags = tuple(str(tag).strip() for tag in entry.get("tags") or () if str(tag).strip())
        rows.append(
            KindDocRow(
                kind=str(entry["kind"]),
                job=str(entry["job"]),
                doc=_normalize_doc(entry.get("doc")),
                source=_normalize_doc(entry.get("source")),
                tags=tags,
            )
        )

    rows.sort(key=lambda r: r.kind)
    return rows


def generate_markdown(*, rows: Iterable[KindDocRow]) -> str:
    rows = list(rows)
    groups: dict[str, list[KindDocRow]] = defaultdict(list)
    for row in rows:
        module = (row.source or "").rsplit(".", 1)[-1] or "other"
        groups[module].append(row)

    lines: list[str] = []
    lines.append("# Safe Output Catalog")
    lines.append("")
    lines.append("This file is generated from `agentic_workflows.safe_outputs.catalog`.")
    lines.append("")
    lines.append("Regenerate with:")
    lines.append("")
    lines.append("```bash")
    lines.append("pdm run update-safe-outputs-docs")
    lines.append("# or")
    lines.append("python tools/generate_safe_outputs_doc.py")
    lines.append("```")
    lines.append("")
    lines.append(f"Total kinds: {len(rows)}")
    lines.append("")

    for group in sorted(groups.keys()):
        lines.append(f"## {group}")
        lines.append("")
        for row in sorted(groups[group], key=lambda r: r.kind):
            tags = f" [{', '.join(row.tags)}]" if row.tags else ""
            if row.doc:
                lines.append(f"- `{row.kind}` (job `{row.job}`){tags}: {row.doc}")
            else:
                lines.append(f"- `{row.kind}` (job `{row.job}`){tags}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def write_safe_outputs_doc(output_path: str) -> int:
    rows = _kind_rows()
    md = generate_markdown(rows=rows)

    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
    with open(output_path, "w", encoding="utf-8", newline="\n") as handle:
        handle.write(md)

    print(f"Wrote {output_path} ({len(rows)} kinds)")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="generate_safe_outputs_doc")
    parser.add_argument(
        "--output",
        default=os.path.join("docs", "safe-outputs.md"),
        help="Output markdown path (default: docs/safe-outputs.md)",
    )
    args = parser.parse_args(argv)

    try:
        return write_safe_outputs_doc(args.output)
    except (OSError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
