"""
Document Readers
================

Turn an uploaded spreadsheet or PDF into library-independent structures:

- ``SpreadsheetReader`` -> ``Workbook`` (ordered ``TabularSheet`` objects,
  rows as header -> raw cell value mappings).
- ``PdfTextReader`` -> ``list[list[str]]`` (pages of text lines rebuilt
  from word positions).

The parsing libraries are injected at construction so readers can be
exercised with fakes.
"""
from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import openpyxl
import pdfplumber
import xlrd
from pdfminer.pdfdocument import PDFEncryptionError, PDFPasswordIncorrect
from pdfminer.pdfparser import PDFSyntaxError

from .errors import FormatError
from .flow_logger import get_logger
from .models import UploadedFile

_HEADER_SEPARATORS_RE = re.compile(r"[\s\-/\\.]+")


def normalize_header(header: Any) -> str:
    """'Order No.' -> 'order_no', ' Karigar/Factory ' -> 'karigar_factory'."""
    key = _HEADER_SEPARATORS_RE.sub("_", str(header or "").strip().lower())
    key = re.sub(r"_+", "_", key)
    return key.strip("_")


@dataclass
class TabularSheet:
    """One sheet: ordered headers and rows keyed by the original header text."""
    name: str
    headers: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def find_column(self, aliases: Iterable[str]) -> Optional[str]:
        """Return the first header whose normalized form is one of ``aliases``."""
        wanted = set(aliases)
        for header in self.headers:
            if normalize_header(header) in wanted:
                return header
        return None

    def cell(self, row_index: int, aliases: Iterable[str], default: Any = None) -> Any:
        column = self.find_column(aliases)
        if column is None:
            return default
        return self.rows[row_index].get(column, default)

    @classmethod
    def from_value_rows(cls, name: str, value_rows: Sequence[Sequence[Any]]) -> "TabularSheet":
        """Build a sheet whose first row holds the headers."""
        if not value_rows:
            return cls(name=name)
        headers: List[str] = []
        positions: List[int] = []
        for idx, raw in enumerate(value_rows[0]):
            header = str(raw).strip() if raw is not None else ""
            if header and header not in headers:
                headers.append(header)
                positions.append(idx)

        rows = []
        for values in value_rows[1:]:
            values = list(values or [])
            rows.append({
                header: (values[pos] if pos < len(values) else None)
                for header, pos in zip(headers, positions)
            })
        return cls(name=name, headers=headers, rows=rows)


@dataclass
class Workbook:
    sheets: List[TabularSheet] = field(default_factory=list)

    @property
    def first_sheet(self) -> TabularSheet:
        return self.sheets[0]


# ---------------------------------------------------------------------------
# Spreadsheets
# ---------------------------------------------------------------------------

class SpreadsheetReader:
    """Read .xlsx (openpyxl) and .xls (xlrd) uploads into a ``Workbook``."""

    def __init__(
        self,
        xlsx_loader: Optional[Callable[..., Any]] = None,
        xls_loader: Optional[Callable[..., Any]] = None,
        logger=None,
    ) -> None:
        self.xlsx_loader = xlsx_loader or openpyxl.load_workbook
        self.xls_loader = xls_loader or xlrd.open_workbook
        self.logger = logger or get_logger()

    def read(self, uploaded: UploadedFile) -> Workbook:
        try:
            if uploaded.extension == ".xls":
                workbook = self._read_xls(uploaded.content)
            else:
                workbook = self._read_xlsx(uploaded.content)
        except FormatError:
            raise
        except Exception as exc:
            self.logger.error(f"Could not read {uploaded.name}: {exc}", component="SpreadsheetReader")
            raise FormatError(
                "Failed to read the spreadsheet. Please ensure the file is a valid "
                "Excel workbook (.xlsx or .xls)."
            ) from exc

        if not workbook.sheets:
            raise FormatError("The Excel file contains no sheets. Please upload a valid workbook.")
        return workbook

    def _read_xlsx(self, content: bytes) -> Workbook:
        wb = self.xlsx_loader(io.BytesIO(content), read_only=True, data_only=True)
        try:
            sheets = [
                TabularSheet.from_value_rows(ws.title, list(ws.iter_rows(values_only=True)))
                for ws in wb.worksheets
            ]
        finally:
            close = getattr(wb, "close", None)
            if close:
                close()
        return Workbook(sheets=sheets)

    def _read_xls(self, content: bytes) -> Workbook:
        book = self.xls_loader(file_contents=content)
        sheets = []
        for sheet in book.sheets():
            value_rows = [sheet.row_values(i) for i in range(sheet.nrows)]
            sheets.append(TabularSheet.from_value_rows(sheet.name, value_rows))
        return Workbook(sheets=sheets)


# ---------------------------------------------------------------------------
# PDFs
# ---------------------------------------------------------------------------

PASSWORD_PROTECTED_MESSAGE = (
    "This PDF is password-protected and cannot be parsed. "
    "Please use an unprotected PDF or an Excel file (.xlsx) instead."
)
CORRUPTED_MESSAGE = (
    "The uploaded file appears to be corrupted or is not a valid PDF. "
    "Please try another file or use an Excel file (.xlsx) instead."
)
UNREADABLE_MESSAGE = (
    "Unable to extract text from this PDF. The file may be scanned images or use an "
    "unsupported format. For best results, please use an Excel file (.xlsx) instead."
)


def _error_chain(exc: BaseException) -> List[BaseException]:
    """The exception, its wrapped first argument (pdfplumber) and its causes."""
    chain: List[BaseException] = []
    pending: List[BaseException] = [exc]
    while pending:
        current = pending.pop()
        if current in chain:
            continue
        chain.append(current)
        if current.args and isinstance(current.args[0], BaseException):
            pending.append(current.args[0])
        if current.__cause__ is not None:
            pending.append(current.__cause__)
    return chain


def classify_pdf_error(exc: BaseException) -> str:
    """Map a PDF library failure to a user-facing message."""
    chain = _error_chain(exc)
    if any(isinstance(e, (PDFPasswordIncorrect, PDFEncryptionError)) for e in chain):
        return PASSWORD_PROTECTED_MESSAGE
    if any("password" in str(e).lower() for e in chain):
        return PASSWORD_PROTECTED_MESSAGE
    if any(isinstance(e, PDFSyntaxError) for e in chain):
        return CORRUPTED_MESSAGE
    return UNREADABLE_MESSAGE


def words_to_lines(words: Iterable[Dict[str, Any]]) -> List[str]:
    """Group words by rounded vertical position; order top-down, then left-right."""
    rows: Dict[int, List[Dict[str, Any]]] = {}
    for word in words:
        text = str(word.get("text", "")).strip()
        if not text:
            continue
        rows.setdefault(int(round(float(word.get("top", 0)))), []).append(word)

    lines = []
    for top in sorted(rows):
        ordered = sorted(rows[top], key=lambda w: float(w.get("x0", 0)))
        lines.append(" ".join(str(w["text"]).strip() for w in ordered))
    return lines


class PdfTextReader:
    """Extract ordered per-page text lines from a PDF with pdfplumber."""

    def __init__(self, opener: Optional[Callable[..., Any]] = None, logger=None) -> None:
        self.opener = opener or pdfplumber.open
        self.logger = logger or get_logger()

    def read(self, uploaded: UploadedFile) -> List[List[str]]:
        try:
            with self.opener(io.BytesIO(uploaded.content)) as pdf:
                pages = [words_to_lines(page.extract_words()) for page in pdf.pages]
        except Exception as exc:
            message = classify_pdf_error(exc)
            self.logger.error(f"PDF extraction failed for {uploaded.name}: {exc!r}", component="PdfTextReader")
            raise FormatError(message) from exc

        if not any(pages):
            raise FormatError(UNREADABLE_MESSAGE)
        return pages
