"""
Shiller Workbook Source - CAPE from Robert Shiller's "ie_data" workbook.

Source: Robert Shiller's "Irrational Exuberance" dataset
URL: http://www.econ.yale.edu/~shiller/data.htm

The workbook is maintained by hand and updated roughly quarterly, so its
layout drifts. The CAPE column is located by header text first; only if no
header alias is found do we fall back to the historical fixed position.
The most recent months are frequently blank (earnings lag prices), so the
value is taken from the last row that actually holds a number.
"""

import io
import logging
from typing import Any, Optional

import aiohttp
import pandas as pd

from valuation_sources.base import BaseValuationSource, parse_finite
from valuation_sources.exceptions import NoDataFailure, ParseFailure
from valuation_sources.models import Observation, SourceKind, SourceMetadata


logger = logging.getLogger(__name__)


WORKBOOK_SHEET = "Data"

# Header search window: the title block and column labels sit in the top rows.
HEADER_SEARCH_ROWS = 20
CAPE_HEADER_ALIASES = ("CAPE", "P/E10", "CYCLICALLY ADJUSTED")
# The total-return variant ("TR CAPE") sits two columns to the right.
EXCLUDED_HEADER_MARKERS = ("TR CAPE", "TR P/E10", "TOTAL RETURN")

# Layout of the workbook as published since the 2010s: date in column A,
# CAPE in column M (index 12), first monthly row (1871.01) at row 9 (index 8).
DATE_COLUMN = 0
FALLBACK_CAPE_COLUMN = 12
FALLBACK_FIRST_DATA_ROW = 8


def format_shiller_date(raw: Any) -> str:
    """
    Convert Shiller's fractional-year dates to YYYY-MM.

    1871.01 is January 1871; 2023.1 is October 2023 (trailing zero dropped).
    Unparseable cells are returned as their string form.
    """
    value = parse_finite(raw)
    if value is None:
        return str(raw).strip()

    year = int(value)
    month = int(round((value - year) * 100))
    if month < 1 or month > 12:
        month = 1
    return f"{year:04d}-{month:02d}"


def locate_cape_column(sheet: pd.DataFrame) -> Optional[tuple[int, int]]:
    """
    Find the CAPE header within the first rows.

    Returns (header_row, column) or None when no alias matches.
    """
    rows = min(HEADER_SEARCH_ROWS, len(sheet))
    for row in range(rows):
        for col in range(sheet.shape[1]):
            cell = sheet.iat[row, col]
            if not isinstance(cell, str):
                continue
            text = " ".join(cell.upper().split())
            if any(marker in text for marker in EXCLUDED_HEADER_MARKERS):
                continue
            if any(alias in text for alias in CAPE_HEADER_ALIASES):
                return row, col
    return None


class ShillerWorkbookSource(BaseValuationSource):
    """Latest CAPE value from the Shiller spreadsheet."""

    URL = "http://www.econ.yale.edu/~shiller/data/ie_data.xls"

    def __init__(
        self,
        url: str = URL,
        timeout: float = BaseValuationSource.DEFAULT_TIMEOUT,
        max_retries: int = BaseValuationSource.MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        super().__init__(timeout, max_retries, session, user_agent)
        self._url = url

    @property
    def name(self) -> str:
        return "shiller_workbook"

    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        return SourceMetadata(
            name=self.name,
            display_name="Shiller ie_data workbook",
            kind=SourceKind.SHILLER,
            base_url=self._url,
            documentation_url="http://www.econ.yale.edu/~shiller/data.htm",
            payload_format="xls",
            priority=2,
            tags=["spreadsheet", "cape"],
        )

    async def fetch_raw(self) -> bytes:
        """Download the workbook."""
        return await self._make_request(self._url, response_type="bytes")

    def parse(self, raw_data: bytes) -> Observation:
        """Locate the CAPE column and take its most recent numeric value."""
        sheet = self._read_sheet(raw_data)

        located = locate_cape_column(sheet)
        if located is not None:
            header_row, cape_column = located
            first_data_row = header_row + 1
            logger.debug(f"[{self.name}] CAPE header found at row {header_row}, column {cape_column}")
        else:
            cape_column = FALLBACK_CAPE_COLUMN
            first_data_row = FALLBACK_FIRST_DATA_ROW
            logger.warning(
                f"[{self.name}] No CAPE header found, using fixed column {cape_column}"
            )

        if cape_column >= sheet.shape[1]:
            raise ParseFailure(
                message=f"Workbook has {sheet.shape[1]} columns, CAPE column {cape_column} missing",
                source_name=self.name,
                field_name="cape",
            )

        rows_scanned = 0
        for row in range(len(sheet) - 1, first_data_row - 1, -1):
            rows_scanned += 1
            value = parse_finite(sheet.iat[row, cape_column])
            if value is None:
                continue
            return Observation(
                value=value,
                date=format_shiller_date(sheet.iat[row, DATE_COLUMN]),
                source=SourceKind.SHILLER,
                source_name=self.name,
                details={"row": row, "column": cape_column},
            )

        raise NoDataFailure(
            message="No numeric CAPE value in workbook",
            source_name=self.name,
            rows_scanned=rows_scanned,
        )

    def _read_sheet(self, raw_data: bytes) -> pd.DataFrame:
        """Read the data sheet without treating any row as a header."""
        try:
            return pd.read_excel(io.BytesIO(raw_data), sheet_name=WORKBOOK_SHEET, header=None)
        except ValueError as e:
            # Sheet renamed; the data has always been on the first sheet.
            logger.warning(f"[{self.name}] Sheet '{WORKBOOK_SHEET}' not readable ({e}), using first sheet")
        try:
            return pd.read_excel(io.BytesIO(raw_data), sheet_name=0, header=None)
        except Exception as e:
            raise ParseFailure(
                message=f"Unreadable workbook: {e}",
                source_name=self.name,
                original_error=e,
            )
