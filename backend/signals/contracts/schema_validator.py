"""
Draft 2020-12 validation for pipeline contracts.

Schemas are addressed by stable URIs such as
``gleania://signals/contracts/schemas/decision_plan.schema.json``. A URI is
resolved to a local file by stripping the scheme prefix and reading the
remaining path under the schemas root (the directory that holds the
``signals`` package). Those URIs are a wire contract: fixture files and
persisted payloads refer to them verbatim.
"""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.exceptions import Unresolvable
from referencing.jsonschema import DRAFT202012

from ..config import settings
from ..errors import SchemaConfigurationError

logger = logging.getLogger(__name__)

SCHEMA_SCHEME = "gleania://"

DECISION_INPUT_SCHEMA_ID = "gleania://signals/contracts/schemas/decision_input.schema.json"
DECISION_PLAN_SCHEMA_ID = "gleania://signals/contracts/schemas/decision_plan.schema.json"
EMAIL_FACTS_SCHEMA_ID = "gleania://signals/contracts/schemas/components/facts/email_facts.schema.json"


def default_schemas_root() -> Path:
    override = getattr(settings, "signals_schemas_root", None)
    if override:
        return Path(override).resolve()
    # backend/signals/contracts/schema_validator.py -> backend/
    return Path(__file__).resolve().parents[2]


def schema_path_for(uri: str, schemas_root: Path) -> Path:
    """Map a schema URI onto its local file. Unsupported schemes are a configuration error."""
    if not uri.startswith(SCHEMA_SCHEME):
        raise SchemaConfigurationError(f"Unsupported schema URI scheme: {uri!r}")
    rel = uri[len(SCHEMA_SCHEME):].split("#", 1)[0].lstrip("/")
    if not rel or ".." in Path(rel).parts:
        raise SchemaConfigurationError(f"Invalid schema URI path: {uri!r}")
    return schemas_root / rel


@lru_cache(maxsize=64)
def _load_schema_file(path: str) -> dict:
    p = Path(path)
    if not p.is_file():
        raise SchemaConfigurationError(f"Schema file not found: {path}")
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def _find_configuration_error(exc: BaseException) -> Optional[SchemaConfigurationError]:
    seen = 0
    current: Optional[BaseException] = exc
    while current is not None and seen < 10:
        if isinstance(current, SchemaConfigurationError):
            return current
        current = current.__cause__ or current.__context__
        seen += 1
    return None


class JsonSchemaValidator:
    """Validates payloads against one contract schema, resolving $refs to local files."""

    def __init__(self, schema_id: str, schemas_root: Optional[Path] = None):
        self.schema_id = schema_id
        self.schemas_root = Path(schemas_root) if schemas_root else default_schemas_root()
        self._validator: Optional[Draft202012Validator] = None

    def _retrieve(self, uri: str) -> Resource:
        # SchemaConfigurationError raised here reaches errors_for() as the cause of Unresolvable.
        contents = _load_schema_file(str(schema_path_for(uri, self.schemas_root)))
        return Resource.from_contents(contents, default_specification=DRAFT202012)

    def _build(self) -> Draft202012Validator:
        schema = _load_schema_file(str(schema_path_for(self.schema_id, self.schemas_root)))
        registry = Registry(retrieve=self._retrieve)
        return Draft202012Validator(schema, registry=registry)

    @property
    def validator(self) -> Draft202012Validator:
        if self._validator is None:
            self._validator = self._build()
        return self._validator

    def errors_for(self, payload: Any) -> list[dict]:
        """Return a list of {path, message, validator} dicts; empty when valid."""
        try:
            raw = list(self.validator.iter_errors(payload))
        except Unresolvable as e:
            cause = _find_configuration_error(e)
            message = str(cause) if cause else f"Unresolvable schema reference: {e}"
            raise SchemaConfigurationError(message) from e
        errors = [
            {
                "path": err.json_path,
                "message": err.message,
                "validator": str(err.validator),
            }
            for err in raw
        ]
        errors.sort(key=lambda x: (x["path"], x["message"]))
        if errors:
            logger.debug(f"Schema {self.schema_id} rejected payload: {len(errors)} error(s)")
        return errors

    def is_valid(self, payload: Any) -> bool:
        return not self.errors_for(payload)
