"""Versioned JSON contracts exchanged between pipeline stages."""
from .schema_validator import (
    DECISION_INPUT_SCHEMA_ID,
    DECISION_PLAN_SCHEMA_ID,
    EMAIL_FACTS_SCHEMA_ID,
    JsonSchemaValidator,
)

__all__ = [
    "DECISION_INPUT_SCHEMA_ID",
    "DECISION_PLAN_SCHEMA_ID",
    "EMAIL_FACTS_SCHEMA_ID",
    "JsonSchemaValidator",
]
