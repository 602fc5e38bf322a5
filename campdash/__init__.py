"""Core (UI-agnostic) outreach dashboard logic.

This package contains:
- spreadsheet sources (public CSV export / service-account API -> raw rows)
- ingestion (header detection, column mapping, Record normalization)
- filter normalization
- aggregate compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
