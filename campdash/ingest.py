from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from campdash.config import IngestConfig
from campdash.errors import MalformedSource
from campdash.models import CanonicalField, ColumnMapping, RawTable, Record
from campdash.sources import TableSource

logger = logging.getLogger(__name__)

DIVIDER_RE = re.compile(r"^[-=_*\s]+$")


def table_frame(table: RawTable) -> pd.DataFrame:
    """Rectangular string frame for a ragged RawTable; missing cells read as ""."""
    if not table:
        return pd.DataFrame()
    width = max((len(row) for row in table), default=0)
    padded = [[str(c).strip() for c in row] + [""] * (width - len(row)) for row in table]
    return pd.DataFrame(padded, dtype="string").fillna("")


def normalize_label(value: object) -> str:
    return re.sub(r"\s+", "", str(value or "")).lower()


def keyword_matches(row: pd.Series, keywords: Iterable[str]) -> int:
    text = " ".join(row.astype(str).str.lower().tolist())
    return sum(1 for k in keywords if k and k.lower() in text)


def find_header_row(df: pd.DataFrame, config: IngestConfig) -> Optional[int]:
    """Index of the first row carrying enough header keywords, or the site-name marker."""
    search_rows = min(config.header_search_rows, len(df))
    marker = config.site_marker.strip()
    for idx in range(config.header_offset, search_rows):
        row = df.iloc[idx]
        if keyword_matches(row, config.header_keywords) >= config.header_min_matches:
            return idx
        col = config.site_marker_column
        if marker and col < len(row) and str(row.iloc[col]).strip() == marker:
            return idx
    return None


def synonym_matches(label: str, synonym: str) -> bool:
    parts = [normalize_label(p) for p in synonym.split("+")]
    return all(p and p in label for p in parts)


def build_column_mapping(headers: List[str], config: IngestConfig) -> ColumnMapping:
    labels = [normalize_label(h) for h in headers]
    indices: Dict[str, Optional[int]] = {f.value: None for f in CanonicalField}
    strategies: Dict[str, str] = {f.value: "unmapped" for f in CanonicalField}
    claimed: set[int] = set()

    ordered = list(config.field_synonyms) + [f.value for f in CanonicalField if f.value not in config.field_synonyms]
    for name in ordered:
        synonyms = config.field_synonyms.get(name, ())
        for idx, label in enumerate(labels):
            if idx in claimed or not label:
                continue
            if any(synonym_matches(label, s) for s in synonyms):
                indices[name] = idx
                strategies[name] = "header"
                claimed.add(idx)
                break

    for name in ordered:
        if indices[name] is not None:
            continue
        default = config.default_indices.get(name)
        if default is None:
            continue
        if default in claimed:
            logger.warning("No header match for %s and default column %d is already mapped; leaving unmapped", name, default)
            continue
        indices[name] = default
        strategies[name] = "default"
        claimed.add(default)

    return ColumnMapping(indices=indices, strategies=strategies, defaults=dict(config.default_indices))


def _is_divider(row: List[str]) -> bool:
    joined = "".join(row)
    return not joined.strip() or bool(DIVIDER_RE.match(joined))


def _cell(row: List[str], idx: Optional[int]) -> str:
    if idx is None or idx < 0 or idx >= len(row):
        return ""
    return str(row[idx]).strip()


def normalize_row(row: List[str], row_id: int, headers: List[str], mapping: ColumnMapping) -> Optional[Record]:
    fields: Dict[str, str] = {}
    for idx, header in enumerate(headers):
        label = str(header).strip()
        if label:
            fields[label] = _cell(row, idx)

    values: Dict[str, Optional[str]] = {}
    for f in CanonicalField:
        value = _cell(row, mapping.index_of(f.value))
        if not value:
            value = _cell(row, mapping.fallback_of(f.value))
        values[f.value] = value or None

    site_name = values.pop(CanonicalField.SITE_NAME.value)
    if not site_name:
        return None
    return Record(id=row_id, site_name=site_name, fields=fields, **values)


def split_table(table: RawTable, config: IngestConfig) -> Tuple[int, List[str], List[List[str]]]:
    """Header index, header labels and the data slice that follows it."""
    df = table_frame(table)
    header_row = find_header_row(df, config)
    if header_row is None:
        raise MalformedSource(
            f"No header row found in the first {config.header_search_rows} rows "
            f"(need {config.header_min_matches} of {len(config.header_keywords)} keywords)."
        )
    rows = df.values.tolist()
    headers = [str(h) for h in rows[header_row]]
    data_rows = rows[header_row + 1 :]
    if data_rows and _is_divider(data_rows[0]):
        data_rows = data_rows[1:]
    return header_row, headers, data_rows


def ingest(table: RawTable, config: Optional[IngestConfig] = None) -> List[Record]:
    config = config or IngestConfig()
    header_row, headers, data_rows = split_table(table, config)
    logger.info("Header row: %d, Columns: %d", header_row + 1, len(headers))

    mapping = build_column_mapping(headers, config)
    logger.debug("Column mapping: %s (%s)", mapping.indices, mapping.strategies)

    records: List[Record] = []
    for position, row in enumerate(data_rows, start=1):
        record = normalize_row(row, position, headers, mapping)
        if record is not None:
            records.append(record)

    if not records:
        raise MalformedSource("No usable data rows after the header row (every row lacks a site name).")
    logger.info("Processed %d data items", len(records))
    return records


def load_records(source: TableSource, source_id: str, range_id: str, config: Optional[IngestConfig] = None) -> List[Record]:
    """Fetch then ingest; no caching, the header search runs on every call."""
    table = source.fetch_table(source_id, range_id)
    if not table:
        raise MalformedSource("The spreadsheet range returned no rows.")
    return ingest(table, config)


def records_frame(records: Iterable[Record]) -> pd.DataFrame:
    cols = ["id"] + [f.value for f in CanonicalField]
    rows = [[r.id] + [getattr(r, c) for c in cols[1:]] for r in records]
    return pd.DataFrame(rows, columns=cols)
