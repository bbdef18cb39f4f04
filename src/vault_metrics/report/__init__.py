from __future__ import annotations

from .formatter import (
    format_apr_panel,
    format_bulk_table,
    format_last_request,
    format_pps_table,
    format_settlements_table,
    format_tvl_table,
    format_vaults_table,
)

__all__ = [
    "format_apr_panel",
    "format_bulk_table",
    "format_last_request",
    "format_pps_table",
    "format_settlements_table",
    "format_tvl_table",
    "format_vaults_table",
]
