"""
Chat-completion client for bank reconciliation suggestions.

Advisory only: nothing in the import, coding or push flow depends on it.
"""
import json
import logging
from typing import Dict, List

import requests

from ledgerlink.config import get_settings
from ledgerlink.errors import LLMError, LLMNotConfigured
from ledgerlink.schemas.xero import BankTransaction, MatchSuggestion, StatementLineInput

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful accounting assistant specialized in bank reconciliation."


def build_match_prompt(statement_line: StatementLineInput, candidates: List[BankTransaction]) -> str:
    """Describe the statement line and the numbered candidates for the model."""
    lines = [
        "You are a bank reconciliation assistant. Analyze this bank statement line and "
        "suggest the best matching transaction from the list.",
        "",
        "Bank Statement Line:",
        f"- Date: {statement_line.date}",
        f"- Description: {statement_line.description}",
        f"- Amount: {statement_line.amount}",
        f"- Reference: {statement_line.reference or 'N/A'}",
        "",
        "Existing Transactions to Match:",
    ]
    for i, tx in enumerate(candidates, start=1):
        description = tx.line_items[0].description if tx.line_items else None
        lines.extend([
            f"{i}. Transaction ID: {tx.transaction_id}",
            f"   - Date: {tx.date}",
            f"   - Contact: {tx.contact.name if tx.contact and tx.contact.name else 'Unknown'}",
            f"   - Description: {description or 'N/A'}",
            f"   - Amount: {tx.total}",
            f"   - Reference: {tx.reference or 'N/A'}",
        ])
    lines.extend([
        "",
        "Respond with JSON only:",
        "{",
        '  "bestMatchIndex": <number or null if no match>,',
        '  "confidence": <"high", "medium", "low", or "none">,',
        '  "reason": "<brief explanation>",',
        '  "suggestedAccountCode": "<if no match, suggest an account code>",',
        '  "suggestedContact": "<if no match, suggest creating/using this contact name>"',
        "}",
    ])
    return "\n".join(lines)


class ReconciliationAdvisor:
    """Client for an OpenAI-compatible chat completions endpoint"""

    def __init__(self, session: requests.Session):
        settings = get_settings()
        if not settings.llm_api_key:
            raise LLMNotConfigured("LLM_API_KEY is not configured")

        self.api_key = settings.llm_api_key
        self.api_url = settings.llm_api_url
        self.model = settings.llm_model
        self.timeout = settings.http_timeout_seconds
        self.session = session

    def chat_completion(self, messages: List[Dict[str, str]], temperature: float = 0.3) -> str:
        """
        Send a single chat completion request asking for a JSON object

        Args:
            messages: List of message dictionaries with 'role' and 'content'
            temperature: Sampling temperature

        Returns:
            Content of the first choice
        """
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {self.api_key}'
        }
        payload = {
            'model': self.model,
            'messages': messages,
            'temperature': temperature,
            'response_format': {'type': 'json_object'},
        }

        try:
            response = self.session.request(
                'POST',
                self.api_url,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise LLMError(f"Completion request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"LLM API error: {response.status_code} - {response.text[:500]}")
            raise LLMError(f"Completion request failed with status {response.status_code}")

        try:
            return response.json()['choices'][0]['message']['content'] or '{}'
        except (ValueError, KeyError, IndexError) as e:
            raise LLMError(f"Unexpected completion response: {e}") from e

    def suggest_match(self, statement_line: StatementLineInput, candidates: List[BankTransaction]) -> MatchSuggestion:
        """Ask the model which candidate matches the statement line"""
        content = self.chat_completion([
            {'role': 'system', 'content': SYSTEM_PROMPT},
            {'role': 'user', 'content': build_match_prompt(statement_line, candidates)},
        ])

        try:
            raw = json.loads(content)
        except json.JSONDecodeError as e:
            raise LLMError(f"Model did not return JSON: {e}") from e
        if not isinstance(raw, dict):
            raise LLMError("Model did not return a JSON object")

        index = raw.get('bestMatchIndex')
        if not isinstance(index, int) or not 1 <= index <= len(candidates):
            index = None

        return MatchSuggestion(
            best_match_index=index,
            confidence=raw.get('confidence') or 'none',
            reason=raw.get('reason') or '',
            suggested_account_code=raw.get('suggestedAccountCode') or None,
            suggested_contact=raw.get('suggestedContact') or None,
        )
