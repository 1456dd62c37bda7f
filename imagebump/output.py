"""
Output module for imagebump.

Two renderings of the same records:
- JSONL on stdout (--json), one object per line, for pipelines
- Rich tables and summaries for people

Errors always go to stderr: a `key=value` line a pipeline can parse (or a
JSON object under --json), then a sentence for the person reading the log.
"""

import json
import sys
from typing import Any, Dict, Iterable, List, Optional

from rich.console import Console
from rich.table import Table

from .exit_codes import UpdaterError

console = Console()

# Column order for tables when the caller does not give one
PREFERRED_COLUMNS = ['path', 'location', 'repository', 'tag', 'changed', 'previous_tag', 'occurrences']
MAX_COLUMNS = 8


def _record(item: Any) -> Dict[str, Any]:
    if isinstance(item, dict):
        return item
    to_dict = getattr(item, 'to_dict', None)
    if to_dict is not None:
        return to_dict()
    return {'value': str(item)}


def emit(
    items: Iterable[Any],
    pretty: bool = False,
    columns: Optional[List[str]] = None,
    title: Optional[str] = None
) -> None:
    """
    Write records as JSONL, or as a table when `pretty` is set.

    Args:
        items: Dicts or objects with to_dict()
        pretty: Render a Rich table instead of JSONL
        columns: Table columns (derived from the records if None)
        title: Table title
    """
    if pretty:
        _render_table([_record(item) for item in items], columns, title)
        return
    for item in items:
        print(json.dumps(_record(item), ensure_ascii=False), flush=True)


def _render_table(rows: List[Dict[str, Any]], columns: Optional[List[str]], title: Optional[str]) -> None:
    if not rows:
        console.print("No image references found")
        return

    columns = columns or _columns_for(rows)
    table = Table(title=title, show_header=True, header_style="bold")
    for name in columns:
        table.add_column(name)
    for row in rows:
        table.add_row(*(_cell(row.get(name)) for name in columns))
    console.print(table)


def _columns_for(rows: List[Dict[str, Any]]) -> List[str]:
    keys = set(rows[0])
    ordered = [name for name in PREFERRED_COLUMNS if name in keys]
    ordered += sorted(keys - set(ordered))
    return ordered[:MAX_COLUMNS]


def _cell(value: Any, width: int = 60) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'yes' if value else 'no'
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    text = str(value)
    return text if len(text) <= width else text[:width - 3] + '...'


def emit_error(error: UpdaterError, json_output: bool = False) -> None:
    """
    Report a failure on stderr.

    The first line is machine-parseable (`error=<kind> code=<n> ...`, or a
    JSON object with --json); the second is a human-readable detail.
    """
    first = json.dumps(error.to_dict(), ensure_ascii=False) if json_output else error.to_line()
    print(first, file=sys.stderr, flush=True)

    detail = f"Error: {error.message}"
    if error.cause is not None and str(error.cause) not in error.message:
        detail += f" ({error.cause})"
    print(detail, file=sys.stderr, flush=True)
