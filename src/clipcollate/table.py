"""Row table and diff view over analyzed clips.

Rows are analyze items (see ClipDescriptor.to_item): base columns plus a
`widgetValues` field map. Headers are the base columns followed by every
field key seen in any row, sorted.

Typical flow for the diff view:

  headers = build_headers(rows)
  spec = parse_key_hide_spec("seed,/^internal_/i")
  shown = visible_headers(headers, spec, hide_paths=True)
  rows = sort_rows(filter_rows(rows, shown, "euler"), "ctime", descending=True)
  for row, changed in diff_rows(rows, shown): ...

Diffs are computed against the rows as displayed, after searching and
sorting, so the first displayed row is always the baseline.
"""

import json
import re
from dataclasses import dataclass, field

from .graph import display_value


BASE_COLUMNS = (
    "file_path",
    "__file_ctime_epoch",
    "__file_ctime_iso",
    "name",
    "size",
    "duration",
    "width",
    "height",
    "fps",
)

# Base columns hidden by the "hide paths" toggle.
PATH_COLUMNS = {"file_path", "__file_ctime_epoch", "__file_ctime_iso"}

SORT_KEYS = {
    "name": lambda r: str(r.get("name") or "").lower(),
    "duration": lambda r: _as_float(r.get("duration")),
    "fps": lambda r: _as_float(r.get("fps")),
    "size": lambda r: _as_float(r.get("size")),
    "ctime": lambda r: _as_float(r.get("__file_ctime_epoch")),
}

_REGEX_TOKEN = re.compile(r"^/(.+)/([a-z]*)$", re.IGNORECASE)

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


@dataclass
class KeyHideSpec:
    substrings: list[str] = field(default_factory=list)
    regexes: list[re.Pattern] = field(default_factory=list)


def _as_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def build_headers(rows: list[dict]) -> list[str]:
    """Base columns followed by the sorted union of field keys."""
    dynamic = set()
    for row in rows:
        dynamic.update((row.get("widgetValues") or {}).keys())
    return [*BASE_COLUMNS, *sorted(dynamic - set(BASE_COLUMNS))]


def parse_key_hide_spec(text: str | None) -> KeyHideSpec:
    """Parse "seed, widgets_values[0], /regex/i" into substrings + regexes.

    Substrings are matched case-insensitively. Regex tokens accept the
    flags i, m and s; tokens that fail to compile are ignored.
    """
    spec = KeyHideSpec()
    for part in (text or "").split(","):
        part = part.strip()
        if not part:
            continue
        m = _REGEX_TOKEN.match(part)
        if m:
            flags = 0
            for ch in m.group(2).lower():
                flags |= _REGEX_FLAGS.get(ch, 0)
            try:
                spec.regexes.append(re.compile(m.group(1), flags))
            except re.error:
                continue
        else:
            spec.substrings.append(part.lower())
    return spec


def field_is_hidden(header: str, spec: KeyHideSpec, hide_paths: bool = False) -> bool:
    h = str(header or "")
    low = h.lower()
    if hide_paths and low in PATH_COLUMNS:
        return True
    if any(sub in low for sub in spec.substrings):
        return True
    return any(rx.search(h) for rx in spec.regexes)


def visible_headers(
    headers: list[str], spec: KeyHideSpec, hide_paths: bool = False,
) -> list[str]:
    return [h for h in headers if not field_is_hidden(h, spec, hide_paths)]


def value_for(row: dict | None, header: str) -> str:
    """Display string of a cell: base column first, then the field map."""
    if row is None:
        return ""
    if header in row and header != "widgetValues":
        return display_value(row[header])
    return display_value((row.get("widgetValues") or {}).get(header))


def filter_rows(rows: list[dict], headers: list[str], term: str | None) -> list[dict]:
    """Rows whose visible values contain `term` (case-insensitive)."""
    t = (term or "").strip().lower()
    if not t:
        return list(rows)
    return [
        r for r in rows
        if t in json.dumps([value_for(r, h) for h in headers], ensure_ascii=False).lower()
    ]


def sort_rows(rows: list[dict], key: str = "ctime", descending: bool = True) -> list[dict]:
    """Sort rows by name, duration, fps, size or ctime."""
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key '{key}'. Valid: {sorted(SORT_KEYS)}")
    return sorted(rows, key=SORT_KEYS[key], reverse=descending)


def changed_fields(curr: dict, prev: dict | None, headers: list[str]) -> list[str]:
    """Headers whose display values differ between two rows.

    With no previous row there is nothing to compare against: the row is
    a baseline and nothing is reported as changed.
    """
    if prev is None:
        return []
    return [h for h in headers if value_for(curr, h) != value_for(prev, h)]


def diff_rows(rows: list[dict], headers: list[str]) -> list[tuple[dict, list[str] | None]]:
    """Pair each row with the headers that changed since the row before.

    The first row gets None (baseline), later rows get a possibly empty list.
    """
    out = []
    for i, row in enumerate(rows):
        prev = rows[i - 1] if i > 0 else None
        out.append((row, changed_fields(row, prev, headers) if prev is not None else None))
    return out


def label_field_choices(visible: list[str], rows: list[dict]) -> list[str]:
    """Keys offered for labels: visible non-base headers, else every field."""
    derived = sorted(h for h in visible if h not in BASE_COLUMNS)
    if derived:
        return derived
    keys = set()
    for row in rows:
        keys.update((row.get("widgetValues") or {}).keys())
    return sorted(keys)
