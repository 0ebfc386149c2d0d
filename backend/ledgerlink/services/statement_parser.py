"""Parser for Xero "statement lines" CSV exports.

An export may hold several bank accounts. Each section is announced by one or
two bare lines (account name, then optionally account number) followed by a
``Date,Payee,...`` header and the data rows::

    Business Cheque Account
    12-3456-7890123-00
    Date,Payee,Particulars,Spent,Received,Tax,Comments
    2024-07-01,DODO,UTL 1234,89.00,,GST,
"""
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

HEADER_PREFIX = "Date,Payee,"
DATA_ROW_RE = re.compile(r"^\d{4}-\d{2}-\d{2},")
MIN_FIELDS = 5


@dataclass
class StatementLine:
    """One bank transaction row from the export."""

    bank_account: str
    bank_account_number: str
    date: str
    payee: str
    particulars: str | None
    spent: Decimal | None
    received: Decimal | None
    tax: str | None = None
    comments: str | None = None

    @property
    def dedup_key(self) -> tuple:
        return (self.bank_account_number, self.date, self.payee, self.spent, self.received)


def parse_amount(value: str | None) -> Decimal | None:
    """Parse an amount column; blank or non-numeric values are absent.

    Handles thousands separators ("1,234.50").
    """
    if value is None or not value.strip():
        return None

    cleaned = value.replace(",", "").strip()
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def split_csv_line(line: str) -> list[str]:
    """Split a CSV row on commas outside double quotes, trimming each field."""
    fields = []
    current = []
    in_quotes = False

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)

    fields.append("".join(current).strip())
    return fields


def parse_statement_lines(csv_text: str) -> list[StatementLine]:
    """Parse a statement-lines export into StatementLine records."""
    lines = [line.strip() for line in csv_text.split("\n")]

    results = []
    bank_account = ""
    bank_account_number = ""
    in_data_section = False

    for line in lines:
        if not line:
            continue

        # Bare line: account name or account number
        if "," not in line and not line.startswith("Date,"):
            if not bank_account or in_data_section:
                bank_account = line
                bank_account_number = ""
                in_data_section = False
            elif not bank_account_number:
                bank_account_number = line
            continue

        if line.startswith(HEADER_PREFIX):
            in_data_section = True
            continue

        if in_data_section and DATA_ROW_RE.match(line):
            fields = split_csv_line(line)
            if len(fields) < MIN_FIELDS:
                continue

            results.append(StatementLine(
                bank_account=bank_account,
                bank_account_number=bank_account_number,
                date=fields[0],
                payee=fields[1],
                particulars=fields[2],
                spent=parse_amount(fields[3]),
                received=parse_amount(fields[4]),
                tax=_optional_field(fields, 5),
                comments=_optional_field(fields, 6),
            ))

    return results


def _optional_field(fields: list[str], index: int) -> str | None:
    if index < len(fields) and fields[index]:
        return fields[index]
    return None
