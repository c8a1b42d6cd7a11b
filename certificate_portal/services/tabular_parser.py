"""Read uploaded spreadsheets into a header list and ordered row dictionaries.

The dialect is picked from the extension hint the caller passes in; the bytes
themselves are never sniffed. Every cell comes back as a display string so the
rest of the pipeline only ever deals with ``str`` values.
"""
from __future__ import annotations

import io
import logging
import numbers
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List

import pandas as pd

from certificate_portal.core.errors import ParseError

logger = logging.getLogger(__name__)

DELIMITED_FORMATS = {"csv": ",", "tsv": "\t"}
WORKBOOK_ENGINES = {"xlsx": "openpyxl", "xls": "xlrd"}
SUPPORTED_FORMATS = tuple(DELIMITED_FORMATS) + tuple(WORKBOOK_ENGINES)
TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")

RawRow = Dict[str, str]


@dataclass
class ParsedSheet:
    headers: List[str] = field(default_factory=list)
    rows: List[RawRow] = field(default_factory=list)


def format_from_filename(filename: str) -> str:
    """Return the bare, lower-cased extension of ``filename`` (``"Data.XLSX"`` -> ``"xlsx"``)."""
    value = (filename or "").strip().lower()
    if "." in value:
        value = value.rsplit(".", 1)[-1]
    return value


def _format_cell(value: Any) -> str:
    """Render a cell for display, dropping the trailing .0 pandas adds to whole numbers."""
    if value is None:
        return ''
    try:
        if pd.isna(value):
            return ''
    except (TypeError, ValueError):
        pass

    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.strftime('%Y-%m-%d')

    if isinstance(value, bool):
        return str(value).upper()

    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)

    if isinstance(value, numbers.Integral):
        return str(int(value))

    return str(value)


def _frame_to_sheet(dataframe: pd.DataFrame) -> ParsedSheet:
    headers = [str(column) for column in dataframe.columns]
    rows: List[RawRow] = []
    for values in dataframe.itertuples(index=False, name=None):
        row = {header: _format_cell(value) for header, value in zip(headers, values)}
        if not any(row.values()):
            continue
        rows.append(row)
    return ParsedSheet(headers=headers, rows=rows)


def _read_delimited(content: bytes, separator: str) -> pd.DataFrame:
    for encoding in TEXT_ENCODINGS:
        try:
            return pd.read_csv(
                io.BytesIO(content),
                sep=separator,
                encoding=encoding,
                dtype=str,
                keep_default_na=False,
                index_col=False,
            )
        except UnicodeDecodeError:
            continue
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except pd.errors.ParserError as exc:
            raise ParseError(f"Unable to read delimited file: {exc}") from exc
    raise ParseError("Unable to decode file with supported encodings")


def _read_workbook(content: bytes, engine: str) -> pd.DataFrame:
    if not content:
        return pd.DataFrame()
    try:
        return pd.read_excel(io.BytesIO(content), sheet_name=0, engine=engine)
    except Exception as exc:
        raise ParseError(f"Unable to read workbook: {exc}") from exc


def parse(content: bytes, declared_format: str) -> ParsedSheet:
    """Parse ``content`` using the dialect named by ``declared_format``.

    ``declared_format`` is an extension hint such as ``"csv"``, ``".xlsx"`` or a
    full filename. Raises :class:`ParseError` when the hint is unsupported or
    the bytes cannot be decoded as that dialect.
    """
    file_format = format_from_filename(declared_format)
    if file_format in DELIMITED_FORMATS:
        dataframe = _read_delimited(content, DELIMITED_FORMATS[file_format])
    elif file_format in WORKBOOK_ENGINES:
        dataframe = _read_workbook(content, WORKBOOK_ENGINES[file_format])
    else:
        raise ParseError(f"Unsupported file format '{declared_format}'")

    sheet = _frame_to_sheet(dataframe)
    logger.debug("Parsed %s upload: %d headers, %d rows", file_format, len(sheet.headers), len(sheet.rows))
    return sheet
