from __future__ import annotations

import json
import uuid

from pydantic import ValidationError

from receipt_scanner.domain.timefmt import today_iso
from receipt_scanner.errors import ParseError
from receipt_scanner.models import ExpenseCategory, ScannedExpense

_CATEGORY_LIST = ", ".join(category.value for category in ExpenseCategory)

EXTRACTION_PROMPT = f"""Analyze this receipt and return JSON with these fields:
{{
  "merchant": "merchant name",
  "amount": total_amount,
  "date": "YYYY-MM-DD",
  "category": "category_from_list",
  "description": "brief_description",
  "items": [
    {{"name": "item1", "quantity": 1, "price": 0.00}}
  ]
}}

Categories: {_CATEGORY_LIST}

Return only valid JSON, no markdown or additional text."""


def parse_expense_text(text: str) -> ScannedExpense:
    """
    Parse the model's answer into an expense.

    The text must be a bare JSON object; fenced or annotated answers are rejected.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"candidate text is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise ParseError(f"expected a JSON object, got {type(payload).__name__}")

    try:
        return ScannedExpense.model_validate(payload)
    except ValidationError as exc:
        raise ParseError(f"candidate JSON does not match the expense shape: {exc}") from exc


def apply_defaults(expense: ScannedExpense) -> ScannedExpense:
    expense.id = str(uuid.uuid4())
    if not expense.date:
        expense.date = today_iso()
    return expense
