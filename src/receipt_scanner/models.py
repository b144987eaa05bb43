from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from receipt_scanner.logger import get_logger

logger = get_logger(__name__)


class ExpenseCategory(str, Enum):
    FOOD = "food"
    TRANSPORTATION = "transportation"
    UTILITIES = "utilities"
    ENTERTAINMENT = "entertainment"
    SHOPPING = "shopping"
    HEALTH = "health"
    EDUCATION = "education"
    OTHER = "other"


def drop_null_fields(data: Any) -> Any:
    if isinstance(data, dict):
        return {key: value for key, value in data.items() if value is not None}
    return data


def reject_booleans(value: Any) -> Any:
    # bool subclasses int, strict mode alone lets it through
    if isinstance(value, bool):
        raise ValueError("expected a number, got a boolean")
    return value


class LineItem(BaseModel):
    name: str = ""
    quantity: int = Field(0, strict=True)
    price: float = Field(0.0, strict=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        return drop_null_fields(data)

    @field_validator("quantity", "price", mode="before")
    @classmethod
    def numbers_only(cls, value: Any) -> Any:
        return reject_booleans(value)


class ScannedExpense(BaseModel):
    id: str = ""
    merchant: str = ""
    amount: float = Field(0.0, strict=True)
    date: str = "" # YYYY-MM-DD
    category: ExpenseCategory = ExpenseCategory.OTHER
    description: str = ""
    items: list[LineItem] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        return drop_null_fields(data)

    @field_validator("amount", mode="before")
    @classmethod
    def numbers_only(cls, value: Any) -> Any:
        return reject_booleans(value)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        normalized = value.strip().lower()
        if not normalized:
            return ExpenseCategory.OTHER
        try:
            return ExpenseCategory(normalized)
        except ValueError:
            logger.warning("Unknown expense category '%s', using '%s'.", value, ExpenseCategory.OTHER.value)
            return ExpenseCategory.OTHER
