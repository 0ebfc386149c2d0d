"""Keyword rules that suggest a ledger account for a statement line."""
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Protocol

import yaml

from ledgerlink.config import get_settings
from ledgerlink.models.staged_transaction import TransactionStatus

logger = logging.getLogger(__name__)


class AccountLike(Protocol):
    code: str | None
    name: str


@dataclass(frozen=True)
class CodingRule:
    """A single ordered rule loaded from the rules file."""

    slug: str
    payee_contains: tuple[str, ...] = ()
    particulars_contains: tuple[str, ...] = ()
    account_code: str = ""
    account_name: str = ""
    status: str = TransactionStatus.CODED.value

    def matches(self, payee: str, particulars: str) -> bool:
        """Check uppercased payee/particulars against this rule's keywords."""
        return any(token in payee for token in self.payee_contains) or any(
            token in particulars for token in self.particulars_contains
        )


@dataclass(frozen=True)
class CodingSuggestion:
    account_code: str
    account_name: str
    status: str
    rule: str = field(default="", compare=False)


def load_coding_rules(path: Path) -> list[CodingRule]:
    """Load ordered coding rules from a YAML file.

    Invalid entries are logged and skipped; rule order is preserved.
    """
    if not path.exists():
        logger.warning(f"Coding rules file not found: {path}")
        return []

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    rules = []
    for index, entry in enumerate(data.get("rules", [])):
        try:
            rules.append(_build_rule(entry, index))
        except ValueError as e:
            logger.error(f"Skipping coding rule #{index} in {path}: {e}")

    logger.info(f"Loaded {len(rules)} coding rules from {path}")
    return rules


def _build_rule(entry: dict, index: int) -> CodingRule:
    slug = entry.get("slug") or f"rule-{index}"
    payee_tokens = tuple(str(t).upper() for t in entry.get("payee_contains", []))
    particulars_tokens = tuple(str(t).upper() for t in entry.get("particulars_contains", []))
    status = entry.get("status", TransactionStatus.CODED.value)
    account_code = str(entry.get("account_code") or "")

    if not payee_tokens and not particulars_tokens:
        raise ValueError("rule has no keywords")
    if status not in (TransactionStatus.CODED.value, TransactionStatus.SKIPPED.value):
        raise ValueError(f"unsupported status '{status}'")
    if status == TransactionStatus.CODED.value and not account_code:
        raise ValueError("coded rule needs an account_code")
    if status == TransactionStatus.SKIPPED.value and account_code:
        raise ValueError("skip rule must not set an account_code")

    return CodingRule(
        slug=slug,
        payee_contains=payee_tokens,
        particulars_contains=particulars_tokens,
        account_code=account_code,
        account_name=entry.get("account_name", ""),
        status=status,
    )


@lru_cache
def get_coding_rules() -> tuple[CodingRule, ...]:
    """Get the configured rules (cached for the process)."""
    return tuple(load_coding_rules(get_settings().coding_rules_path))


def suggest_coding(
    payee: str,
    particulars: str | None,
    accounts: Iterable[AccountLike] = (),
    rules: Sequence[CodingRule] | None = None,
) -> CodingSuggestion | None:
    """Suggest an account for a statement line, or None to leave it pending.

    The first matching rule wins. When the suggested code exists among the
    active ``accounts`` its real name replaces the rule's label.
    """
    if rules is None:
        rules = get_coding_rules()

    payee_upper = (payee or "").upper()
    particulars_upper = (particulars or "").upper()

    for rule in rules:
        if not rule.matches(payee_upper, particulars_upper):
            continue

        account_name = rule.account_name
        if rule.account_code:
            matched = next((a for a in accounts if a.code == rule.account_code), None)
            if matched:
                account_name = matched.name
            return CodingSuggestion(rule.account_code, account_name, TransactionStatus.CODED.value, rule.slug)

        return CodingSuggestion("", account_name, TransactionStatus.SKIPPED.value, rule.slug)

    return None
