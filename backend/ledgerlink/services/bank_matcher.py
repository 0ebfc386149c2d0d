"""Match a CSV bank account number to a Xero bank account."""
import re
from collections.abc import Iterable
from typing import Protocol

NON_DIGITS_RE = re.compile(r"\D")


class BankAccountLike(Protocol):
    account_id: str
    bank_account_number: str | None


def digits_only(value: str) -> str:
    """Digits of an account number without separators or leading zeros."""
    return NON_DIGITS_RE.sub("", value).lstrip("0")


def numbers_match(csv_number: str, candidate_number: str) -> bool:
    """Either string contains the other, or their digits are identical.

    Leading zeros are ignored, so "123-456" matches "00123456". Numbers
    without any significant digits never match on the digit comparison.
    """
    if csv_number in candidate_number or candidate_number in csv_number:
        return True
    csv_digits = digits_only(csv_number)
    return bool(csv_digits) and csv_digits == digits_only(candidate_number)


def match_bank_account(csv_number: str | None, bank_accounts: Iterable[BankAccountLike]) -> str | None:
    """Return the account id of the first matching bank account, or None."""
    if not csv_number:
        return None

    for account in bank_accounts:
        if account.bank_account_number and numbers_match(csv_number, account.bank_account_number):
            return account.account_id
    return None
