"""Output formatting utilities for zenodo-cli.

Provides formatters for:
- JSON output
- Table output
- CSV export
- Metadata diffs for update previews

Every formatter accepts model objects, dictionaries, or lists of either,
plus an optional comma-separated field selection supporting dotted paths
such as ``stats.version_downloads``.
"""

import csv
import io
import json
import shutil
from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

DEFAULT_TERMINAL_WIDTH = 120
MIN_TITLE_WIDTH = 20
MAX_DIFF_VALUE = 200

_MISSING = object()


class OutputFormat(str, Enum):
    """Supported output formats."""

    JSON = "json"
    TABLE = "table"
    CSV = "csv"


def to_plain(obj: Any) -> Any:
    """Convert models and containers into JSON-compatible values."""
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "to_dict"):
        return to_plain(obj.to_dict())
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_plain(asdict(obj))
    if isinstance(obj, dict):
        return {str(k): to_plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_plain(item) for item in obj]
    return str(obj)


def to_rows(data: Any) -> List[Dict[str, Any]]:
    """Convert a single item or a sequence of items into a list of row dicts."""
    plain = to_plain(data)
    if isinstance(plain, dict):
        return [plain]
    if isinstance(plain, list) and all(isinstance(row, dict) for row in plain):
        return plain
    raise ValueError("data cannot be converted to tabular format")


def parse_fields(fields: str) -> List[str]:
    """Split a comma-separated field list, dropping blanks."""
    if not fields:
        return []
    return [f.strip() for f in fields.split(",") if f.strip()]


def resolve_field(row: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted path like ``stats.downloads``; returns a sentinel if absent."""
    current: Any = row
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def filter_fields(rows: List[Dict[str, Any]], fields: Sequence[str]) -> List[Dict[str, Any]]:
    """Keep only the selected fields in each row; missing paths are omitted."""
    if not fields:
        return rows
    filtered = []
    for row in rows:
        out = {}
        for f in fields:
            value = resolve_field(row, f)
            if value is not _MISSING:
                out[f] = value
        filtered.append(out)
    return filtered


def detect_columns(rows: List[Dict[str, Any]], fields: Sequence[str]) -> List[str]:
    """Columns in first-seen order, or the explicit field selection."""
    if fields:
        return list(fields)
    columns: List[str] = []
    seen = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns


def stringify(value: Any) -> str:
    """Convert a value to a display string.

    Lists of single-key objects are flattened, e.g.
    ``[{"identifier": "a"}, {"identifier": "b"}]`` becomes ``"a, b"``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        if value and all(isinstance(item, dict) and len(item) == 1 for item in value):
            return ", ".join(str(next(iter(item.values()))) for item in value)
        return json.dumps(value, separators=(",", ":"))
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def truncate(text: str, max_len: int) -> str:
    """Shorten text to ``max_len`` characters, ending with ``...`` if cut."""
    if len(text) <= max_len:
        return text
    if max_len <= 3:
        return text[:max_len]
    return text[: max_len - 3] + "..."


class JSONFormatter:
    """Formats data as JSON."""

    def __init__(self, indent: int = 2):
        self.indent = indent

    def format(self, data: Any, fields: Sequence[str] = ()) -> str:
        """Format data as an indented JSON string.

        With a field selection the output is always a list of filtered rows.
        """
        if fields:
            converted: Any = filter_fields(to_rows(data), fields)
        else:
            converted = to_plain(data)
        return json.dumps(converted, indent=self.indent, default=str)


class TableFormatter:
    """Formats data as an ASCII table sized to the terminal."""

    def __init__(self, width: Optional[int] = None, column_separator: str = "  "):
        """Initialize table formatter.

        Args:
            width: Terminal width (detected when omitted)
            column_separator: Separator between columns
        """
        self.width = width
        self.column_separator = column_separator

    def _terminal_width(self) -> int:
        if self.width:
            return self.width
        return shutil.get_terminal_size((DEFAULT_TERMINAL_WIDTH, 24)).columns

    def _title_width(self, rows: List[List[str]], headers: List[str], title_idx: int) -> int:
        other = 0
        for i, header in enumerate(headers):
            if i == title_idx:
                continue
            other += max([len(header)] + [len(row[i]) for row in rows])
        separators = (len(headers) - 1) * len(self.column_separator)
        available = self._terminal_width() - other - separators
        return max(available, MIN_TITLE_WIDTH)

    def format(self, data: Any, fields: Sequence[str] = ()) -> str:
        """Format data as a table with upper-case headers."""
        rows = filter_fields(to_rows(data), fields)
        columns = detect_columns(rows, fields)
        if not columns:
            return ""

        cells = [[stringify(row.get(col)) for col in columns] for row in rows]
        headers = [col.upper() for col in columns]

        title_idx = next((i for i, c in enumerate(columns) if c.lower() == "title"), -1)
        if title_idx >= 0:
            max_title = self._title_width(cells, headers, title_idx)
            for record in cells:
                record[title_idx] = truncate(record[title_idx], max_title)

        widths = [
            max([len(headers[i])] + [len(record[i]) for record in cells])
            for i in range(len(columns))
        ]

        lines = [self.column_separator.join(h.ljust(w) for h, w in zip(headers, widths)).rstrip()]
        for record in cells:
            lines.append(
                self.column_separator.join(v.ljust(w) for v, w in zip(record, widths)).rstrip()
            )
        return "\n".join(lines)


class CSVFormatter:
    """Formats data as CSV."""

    def __init__(self, delimiter: str = ",", quoting: int = csv.QUOTE_MINIMAL):
        self.delimiter = delimiter
        self.quoting = quoting

    def format(self, data: Any, fields: Sequence[str] = ()) -> str:
        """Format data as CSV with a header row."""
        rows = filter_fields(to_rows(data), fields)
        columns = detect_columns(rows, fields)
        if not columns:
            return ""

        output = io.StringIO()
        writer = csv.writer(output, delimiter=self.delimiter, quoting=self.quoting, lineterminator="\n")
        writer.writerow(columns)
        for row in rows:
            writer.writerow([stringify(row.get(col)) for col in columns])
        return output.getvalue()


def format_output(data: Any, output_format: str, fields: str = "") -> str:
    """Render data in the requested format.

    Args:
        data: Model object, dict, or a list of either
        output_format: One of ``json``, ``table``, ``csv``
        fields: Comma-separated field selection

    Returns:
        The rendered text

    Raises:
        ValueError: If the format is not supported
    """
    try:
        fmt = OutputFormat(output_format)
    except ValueError:
        raise ValueError(f"unsupported output format: {output_format!r}") from None

    field_list = parse_fields(fields)
    if fmt is OutputFormat.JSON:
        return JSONFormatter().format(data, field_list)
    if fmt is OutputFormat.TABLE:
        return TableFormatter().format(data, field_list)
    return CSVFormatter().format(data, field_list)


@dataclass
class MetadataChange:
    """One changed leaf between two metadata documents."""

    path: str
    kind: str  # "create", "delete" or "update"
    old: Any = None
    new: Any = None


def _diff(old: Any, new: Any, path: Tuple[str, ...], changes: List[MetadataChange]) -> None:
    if isinstance(old, dict) and isinstance(new, dict):
        for key in list(old.keys()) + [k for k in new.keys() if k not in old]:
            _diff(old.get(key, _MISSING), new.get(key, _MISSING), path + (str(key),), changes)
        return
    if isinstance(old, list) and isinstance(new, list):
        for i in range(max(len(old), len(new))):
            left = old[i] if i < len(old) else _MISSING
            right = new[i] if i < len(new) else _MISSING
            _diff(left, right, path + (str(i),), changes)
        return

    if old == new:
        return
    dotted = ".".join(path)
    if old is _MISSING:
        changes.append(MetadataChange(dotted, "create", new=new))
    elif new is _MISSING:
        changes.append(MetadataChange(dotted, "delete", old=old))
    else:
        changes.append(MetadataChange(dotted, "update", old=old, new=new))


def diff_metadata(old: Any, new: Any) -> List[MetadataChange]:
    """Compute field-by-field changes between two metadata documents."""
    changes: List[MetadataChange] = []
    _diff(to_plain(old), to_plain(new), (), changes)
    return changes


def _display(value: Any) -> str:
    if value is None or value == "":
        return "<empty>"
    text = value if isinstance(value, str) else json.dumps(value)
    return truncate(text, MAX_DIFF_VALUE + 3)


def render_diff(changes: Sequence[MetadataChange]) -> str:
    """Render changes as a readable +/- listing."""
    if not changes:
        return "No changes detected."
    lines = [f"Changes ({len(changes)}):"]
    for change in changes:
        if change.kind == "create":
            lines.append(f"  {change.path}: + {_display(change.new)}")
        elif change.kind == "delete":
            lines.append(f"  {change.path}: - {_display(change.old)}")
        else:
            lines.append(f"  {change.path}:")
            lines.append(f"    - {_display(change.old)}")
            lines.append(f"    + {_display(change.new)}")
    return "\n".join(lines)
