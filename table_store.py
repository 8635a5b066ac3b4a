"""
Reading and rewriting the job-links workbook.

Every save rewrites the complete first worksheet into a temporary file and
swaps it over the target, so readers only ever see a whole table.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, List

import openpyxl

from data_models import JobLinkRow, Table
from retry import RetryPolicy, linear_backoff

LOGGER = logging.getLogger(__name__)

LINK_COLUMN = "Link"
TITLE_COLUMN = "Title"
DEFAULT_SHEET_NAME = "Sheet1"
LOCK_ERRNOS = {errno.EBUSY, errno.EACCES, errno.ETXTBSY}


class TableError(Exception):
    """Base class for job-links table failures."""


class MissingColumnError(TableError):
    """The source table lacks a column the pipeline cannot do without."""

    def __init__(self, column: str, found: List[str]) -> None:
        self.column = column
        self.found = found
        super().__init__(
            f'Table must have a "{column}" column. Found: {", ".join(found) or "(none)"}'
        )


class TableBusyError(TableError):
    """The target file stayed locked by another program through every retry."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(
            f"{path.name} is busy or locked. Please close it in Excel "
            "(or any other program) and try again."
        )


def is_lock_contention(exc: BaseException) -> bool:
    """Return True when an OS error means another process holds the file."""
    if isinstance(exc, PermissionError):
        return True
    return isinstance(exc, OSError) and exc.errno in LOCK_ERRNOS


def _cell_text(value: Any) -> Any:
    return "" if value is None else value


def load_table(path: Path) -> Table:
    """
    Load the first worksheet of a workbook as a list of row dicts.

    Args:
        path: Workbook location.

    Returns:
        Table snapshot; blank rows are skipped.

    Raises:
        FileNotFoundError: If the workbook does not exist.
        MissingColumnError: If the header has no ``Link`` column.
    """
    if not path.exists():
        raise FileNotFoundError(f"{path.name} not found at {path}")

    workbook = openpyxl.load_workbook(path, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        values = sheet.iter_rows(values_only=True)
        header_row = next(values, None) or ()
        # Column positions of named headers; unnamed columns are dropped.
        positions = [
            (index, str(h).strip())
            for index, h in enumerate(header_row)
            if h is not None and str(h).strip()
        ]
        headers = [name for _, name in positions]
        if not headers:
            LOGGER.warning("%s is empty", path)
            return Table(sheet_name=sheet.title, headers=[], rows=[])
        if LINK_COLUMN not in headers:
            raise MissingColumnError(LINK_COLUMN, headers)

        rows: List[JobLinkRow] = []
        for raw in values:
            if all(cell is None or str(cell).strip() == "" for cell in raw):
                continue
            rows.append(
                {name: _cell_text(raw[index]) if index < len(raw) else "" for index, name in positions}
            )
    finally:
        workbook.close()

    LOGGER.info("Loaded %d rows from %s", len(rows), path)
    return Table(sheet_name=sheet.title, headers=headers, rows=rows)


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return value


def _default_file_mode() -> int:
    """Mode a plain ``open()`` would give a new file under the current umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _match_permissions(path: Path, temp_name: str) -> None:
    # mkstemp creates 0600 files; keep the workbook readable the way it was.
    if path.exists():
        shutil.copymode(path, temp_name)
    else:
        os.chmod(temp_name, _default_file_mode())


def _write_workbook(path: Path, table: Table) -> None:
    """Write ``table`` into the first sheet of ``path`` via a temp-file swap."""
    if path.exists():
        workbook = openpyxl.load_workbook(path)
        old_sheet = workbook.worksheets[0]
        sheet_name = table.sheet_name or old_sheet.title
        workbook.remove(old_sheet)
        sheet = workbook.create_sheet(sheet_name, 0)
        workbook.active = 0
    else:
        workbook = openpyxl.Workbook()
        sheet = workbook.active
        sheet.title = (table.sheet_name or DEFAULT_SHEET_NAME)[:31]

    sheet.append(list(table.headers))
    for row in table.rows:
        sheet.append([_cell_value(row.get(header)) for header in table.headers])

    handle, temp_name = tempfile.mkstemp(suffix=".xlsx", prefix=".tmp-", dir=path.parent)
    os.close(handle)
    try:
        workbook.save(temp_name)
        _match_permissions(path, temp_name)
        os.replace(temp_name, path)
    finally:
        if os.path.exists(temp_name):
            os.remove(temp_name)


def save_table(
    path: Path,
    table: Table,
    attempts: int = 5,
    retry_delay: float = 1.5,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Rewrite the whole table to disk, retrying while the file is locked.

    Args:
        path: Workbook location.
        table: Complete snapshot to persist.
        attempts: Number of write attempts before giving up.
        retry_delay: Base delay; attempt ``n`` waits ``n * retry_delay`` seconds.
        sleep: Sleep function (injectable for tests).

    Raises:
        TableBusyError: If the file stayed locked through every attempt.
        OSError: For any other I/O failure.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    policy = RetryPolicy(
        max_attempts=attempts,
        backoff=linear_backoff(retry_delay),
        is_transient=is_lock_contention,
        retry_on=is_lock_contention,
        sleep=sleep,
        name=f"Writing {path.name}",
    )
    try:
        policy.call(lambda: _write_workbook(path, table))
    except OSError as exc:
        if is_lock_contention(exc):
            raise TableBusyError(path) from exc
        raise
    LOGGER.debug("Saved %d rows to %s", len(table.rows), path)
