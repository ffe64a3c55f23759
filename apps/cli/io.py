"""CLI I/O helpers for HTML render exports."""

from __future__ import annotations

import tempfile
from pathlib import Path


def html_export_path(export_dir: Path, case_name: str, html_mode: str) -> Path:
    """Build `<case>_<mode>.html` under export_dir."""

    return export_dir / f"{case_name}_{html_mode}.html"


def clear_html_exports(export_dir: Path) -> int:
    """Delete previous HTML exports; return how many files were removed."""

    if not export_dir.is_dir():
        return 0
    removed = 0
    for path in export_dir.glob("*.html"):
        path.unlink(missing_ok=True)
        removed += 1
    return removed


def write_text_atomic(path: Path, text: str) -> None:
    """Write text atomically using a temporary file + replace."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        tmp.write(text)

    tmp_path.replace(path)
