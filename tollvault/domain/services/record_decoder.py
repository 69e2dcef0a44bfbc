"""
Record Decoder - turns one CSV document into TransactionRecord objects.

Headers are resolved by name once, so column order does not matter and extra
columns are ignored. Amount fields that do not parse are read as zero.
"""
import csv
import io
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import BinaryIO, Iterator, Optional, Sequence, TextIO, Union

from tollvault.core.exceptions import MissingColumnError, StreamReadError
from tollvault.core.logging import get_logger
from tollvault.db.models.transaction import AMOUNT_PRECISION, AMOUNT_SCALE

logger = get_logger(__name__)

COL_ENROLMENT_NO_DATE = "ENROLMENT_NO_DATE"
COL_TOTAL_AMOUNT_CHARGED = "TOTAL_AMOUNT_CHARGED"
COL_GST_AMOUNT = "GST_AMOUNT"
COL_OPERATOR_ID = "OPERATOR_ID"
COL_RESIDENT_NAME = "RESIDENT_NAME"

REQUIRED_COLUMNS = (
    COL_ENROLMENT_NO_DATE,
    COL_TOTAL_AMOUNT_CHARGED,
    COL_GST_AMOUNT,
    COL_OPERATOR_ID,
    COL_RESIDENT_NAME,
)

_READ_ERRORS = (csv.Error, ValueError, OSError)  # ValueError covers UnicodeDecodeError

_AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_SCALE)
_AMOUNT_LIMIT = Decimal(10) ** (AMOUNT_PRECISION - AMOUNT_SCALE)


@dataclass(frozen=True)
class TransactionRecord:
    enrolment_no_date: str
    total_amount_charged: Decimal
    gst_amount: Decimal
    operator_id: str
    resident_name: str
    upload_date: date


def _try_decimal(raw: str) -> Optional[Decimal]:
    """
    Parse an amount into the stored domain, None when it does not fit.

    Digits past AMOUNT_SCALE decimals are rounded here, once, so the upload
    summary and the stored row hold the same value.
    """
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return None
    if not value.is_finite() or abs(value) >= _AMOUNT_LIMIT:
        return None
    if value.as_tuple().exponent < -AMOUNT_SCALE:
        value = value.quantize(_AMOUNT_QUANTUM)
    return value if abs(value) < _AMOUNT_LIMIT else None


def parse_amount(raw: str) -> Decimal:
    """Lenient decimal parse: blanks, garbage, NaN, infinities and out-of-range values become 0"""
    value = _try_decimal(raw)
    return Decimal("0") if value is None else value


def _read_amount(row: Sequence[str], position: int, column: str, line: int) -> Decimal:
    value = _try_decimal(row[position])
    if value is None:
        logger.debug(
            "Unparseable or out-of-range amount read as zero",
            extra_data={"line": line, "column": column, "value": row[position]},
        )
        return Decimal("0")
    return value


def resolve_columns(header: Sequence[str]) -> dict[str, int]:
    """
    Map each required column to its position in ``header``.

    Raises:
        MissingColumnError: for the first required column not present
    """
    positions = {name.strip().lstrip("\ufeff"): index for index, name in enumerate(header)}
    for column in REQUIRED_COLUMNS:
        if column not in positions:
            raise MissingColumnError(column)
    return {column: positions[column] for column in REQUIRED_COLUMNS}


def _as_text(stream: Union[BinaryIO, TextIO]) -> TextIO:
    if isinstance(stream, io.TextIOBase):
        return stream
    return io.TextIOWrapper(stream, encoding="utf-8-sig", newline="")


def decode_transactions(
    stream: Union[BinaryIO, TextIO],
    upload_date: date,
) -> Iterator[TransactionRecord]:
    """
    Validate the header eagerly, then return a lazy iterator over the rows.

    Args:
        stream: CSV document, binary (UTF-8, optional BOM) or text
        upload_date: batch date stamped on every record of this call

    Raises:
        MissingColumnError: a required header is absent (raised here, before any row)
        StreamReadError: the header line itself cannot be read; later read
            errors are raised by the returned iterator
    """
    reader = csv.reader(_as_text(stream))
    try:
        header = next(reader, None)
    except _READ_ERRORS as exc:
        raise StreamReadError(str(exc), line=reader.line_num or 1) from exc

    columns = resolve_columns(header or [])
    return _iter_records(reader, columns, len(header), upload_date)


def _iter_records(
    reader,
    columns: dict[str, int],
    field_count: int,
    upload_date: date,
) -> Iterator[TransactionRecord]:
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except _READ_ERRORS as exc:
            raise StreamReadError(str(exc), line=reader.line_num) from exc

        if not row:
            continue
        if len(row) != field_count:
            raise StreamReadError(
                f"wrong number of fields: expected {field_count}, got {len(row)}",
                line=reader.line_num,
            )

        line = reader.line_num
        yield TransactionRecord(
            enrolment_no_date=row[columns[COL_ENROLMENT_NO_DATE]],
            total_amount_charged=_read_amount(
                row, columns[COL_TOTAL_AMOUNT_CHARGED], COL_TOTAL_AMOUNT_CHARGED, line
            ),
            gst_amount=_read_amount(row, columns[COL_GST_AMOUNT], COL_GST_AMOUNT, line),
            operator_id=row[columns[COL_OPERATOR_ID]],
            resident_name=row[columns[COL_RESIDENT_NAME]],
            upload_date=upload_date,
        )
