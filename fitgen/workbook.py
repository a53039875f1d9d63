"""
Read-only access to the SDK Profile workbook.

The rest of the generator only ever sees sheets of rows of string cells, so
that no spreadsheet format detail leaks past this module. Office Open XML
(Profile.xlsx, every SDK since 16.x) is read with openpyxl, the older BIFF
format (Profile.xls) with xlrd.
"""

import datetime
import io
import logging
import struct
import zipfile

import openpyxl
import xlrd
import xlrd.compdoc
from openpyxl.utils.exceptions import InvalidFileException

from fitgen.utils import InputError

logger = logging.getLogger(__name__)

XLSX_MAGIC = b'PK\x03\x04'
XLS_MAGIC = b'\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1'


def cell_str(value):
    """Normalize a raw cell value the way it reads in the spreadsheet"""
    if value is None:
        return ''
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, float):
        # Both readers hand back integral numbers as floats
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    return str(value).strip()


class Row:
    __slots__ = ('index', 'cells')

    def __init__(self, index, cells):
        self.index = index
        self.cells = cells

    def cell(self, index):
        if index is None or index >= len(self.cells):
            return ''
        return self.cells[index]

    def is_blank(self):
        return not any(self.cells)

    def __repr__(self):
        return '<Row #%d: %r>' % (self.index, self.cells)


class Sheet:
    __slots__ = ('name', '_rows')

    def __init__(self, name, rows):
        self.name = name
        self._rows = rows

    def rows(self):
        return iter(self._rows)

    def __len__(self):
        return len(self._rows)


class Workbook:
    def __init__(self, sheets):
        # sheet name -> list of rows (each a list of str)
        self._sheets = sheets

    @property
    def sheet_names(self):
        return list(self._sheets)

    def has_sheet(self, name):
        return name in self._sheets

    def sheet(self, name):
        try:
            raw_rows = self._sheets[name]
        except KeyError:
            raise InputError('Workbook has no sheet named %r' % name, sheet=name) from None
        return Sheet(name, [Row(i, cells) for i, cells in enumerate(raw_rows)])


# openpyxl parses with ElementTree or lxml; ParseError and XMLSyntaxError are both SyntaxErrors
XLSX_ERRORS = (zipfile.BadZipFile, InvalidFileException, KeyError, ValueError, OSError, SyntaxError)


def _load_xlsx(data):
    try:
        book = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except XLSX_ERRORS as e:
        raise InputError('Unreadable xlsx workbook: %s' % e) from e

    # Read only worksheets parse their XML lazily, while rows are iterated
    try:
        return {
            ws.title: [[cell_str(v) for v in row] for row in ws.iter_rows(values_only=True)]
            for ws in book.worksheets
        }
    except XLSX_ERRORS as e:
        raise InputError('Unreadable xlsx workbook: %s' % e) from e
    finally:
        book.close()


def _load_xls(data):
    try:
        book = xlrd.open_workbook(file_contents=data, on_demand=True)
    except (xlrd.XLRDError, xlrd.compdoc.CompDocError, struct.error, ValueError, IndexError, AssertionError) as e:
        raise InputError('Unreadable xls workbook: %s' % e) from e

    try:
        sheets = {}
        for name in book.sheet_names():
            sheet = book.sheet_by_name(name)
            sheets[name] = [[cell_str(v) for v in sheet.row_values(r)] for r in range(sheet.nrows)]
        return sheets
    finally:
        book.release_resources()


def open_workbook(data):
    """Open a workbook from its raw bytes.

    :param bytes data: contents of Profile.xlsx or Profile.xls
    :rtype: Workbook
    """
    if not data:
        raise InputError('Workbook data is empty')

    data = bytes(data)
    if data.startswith(XLSX_MAGIC):
        sheets = _load_xlsx(data)
    elif data.startswith(XLS_MAGIC):
        sheets = _load_xls(data)
    else:
        raise InputError('Workbook data is neither xlsx nor xls (starts with %r)' % data[:8])

    logger.debug('Opened workbook with sheets: %s', ', '.join(sheets))
    return Workbook(sheets)
