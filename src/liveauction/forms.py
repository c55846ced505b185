"""Per-tenant registration form schemas.

The schema decides which extension fields a player may carry; the core only
stores the checked ``CustomFields`` it is handed.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from liveauction.errors import AuctionValidationError
from liveauction.models import CustomFields, FieldValue


logger = logging.getLogger(__name__)


FIELD_TYPES = ("text", "number", "select", "file", "textarea", "date", "email", "tel")


@dataclass(frozen=True)
class FieldSpec:
    name: str
    label: str
    field_type: str = "text"
    required: bool = False
    options: Tuple[str, ...] = ()

    def coerce(self, value: FieldValue) -> FieldValue:
        if value is None:
            return None
        if self.field_type == "number":
            if isinstance(value, bool):
                raise AuctionValidationError(f"{self.label} must be a number")
            if isinstance(value, (int, float)):
                return value
            try:
                number = float(str(value))
            except ValueError as exc:
                raise AuctionValidationError(f"{self.label} must be a number") from exc
            return int(number) if number.is_integer() else number
        if self.field_type == "select" and self.options and str(value) not in self.options:
            raise AuctionValidationError(f"{self.label} must be one of: {', '.join(self.options)}")
        return value


@dataclass
class FormSchema:
    fields: List[FieldSpec] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "FormSchema":
        specs: list[FieldSpec] = []
        for raw in data.get("fields", []) or []:  # type: ignore[union-attr]
            if not isinstance(raw, Mapping):
                raise ValueError("form field entries must be objects")
            field_type = str(raw.get("fieldType", "text"))
            if field_type not in FIELD_TYPES:
                raise ValueError(f"unsupported field type {field_type!r}")
            name = str(raw["fieldName"])
            specs.append(
                FieldSpec(
                    name=name,
                    label=str(raw.get("fieldLabel", name)),
                    field_type=field_type,
                    required=bool(raw.get("required", False)),
                    options=tuple(str(option) for option in raw.get("options", []) or []),
                )
            )
        return cls(fields=specs)

    @classmethod
    def load(cls, path: Path) -> "FormSchema":
        return cls.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def to_dict(self) -> dict:
        return {
            "fields": [
                {
                    "fieldName": spec.name,
                    "fieldLabel": spec.label,
                    "fieldType": spec.field_type,
                    "required": spec.required,
                    "options": list(spec.options),
                }
                for spec in self.fields
            ]
        }

    def save(self, path: Path) -> None:
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")

    def check(self, custom_fields: CustomFields) -> CustomFields:
        """Return ``custom_fields`` coerced to the schema's types.

        Unknown keys and missing required fields are rejected. ``file`` fields
        are uploaded separately and never required here.
        """

        specs: Dict[str, FieldSpec] = {spec.name: spec for spec in self.fields}
        unknown = sorted(set(custom_fields.keys()) - set(specs))
        if unknown:
            raise AuctionValidationError(f"Unknown form fields: {', '.join(unknown)}")
        checked: dict[str, FieldValue] = {}
        for name, spec in specs.items():
            value = custom_fields.get(name)
            if value is None:
                if spec.required and spec.field_type != "file":
                    raise AuctionValidationError(f"{spec.label} is required")
                continue
            checked[name] = spec.coerce(value)
        try:
            return CustomFields(checked)
        except ValidationError as exc:
            raise AuctionValidationError(str(exc)) from exc


class FormSchemaRegistry:
    """Thread-safe in-memory schema lookup keyed by tenant.

    Tenants without a registered schema accept any well-formed extension map.
    """

    def __init__(self, schemas: Optional[Mapping[str, FormSchema]] = None):
        self._lock = threading.Lock()
        self._schemas: Dict[str, FormSchema] = dict(schemas or {})

    @classmethod
    def load_dir(cls, directory: Path) -> "FormSchemaRegistry":
        """Load every ``<tenant>.json`` schema file in ``directory``."""

        schemas: Dict[str, FormSchema] = {}
        for path in sorted(Path(directory).glob("*.json")):
            try:
                schemas[path.stem] = FormSchema.load(path)
            except (KeyError, ValueError) as exc:
                raise ValueError(f"Invalid form schema {path.name}: {exc}") from exc
        logger.info("Loaded %d form schema(s) from %s", len(schemas), directory)
        return cls(schemas)

    def register(self, tenant_id: str, schema: FormSchema) -> None:
        with self._lock:
            self._schemas[tenant_id] = schema

    def get(self, tenant_id: str) -> Optional[FormSchema]:
        with self._lock:
            return self._schemas.get(tenant_id)

    def check(self, tenant_id: str, custom_fields: CustomFields) -> CustomFields:
        schema = self.get(tenant_id)
        if schema is None:
            return custom_fields
        return schema.check(custom_fields)

    def clear(self, tenant_id: str) -> None:
        with self._lock:
            self._schemas.pop(tenant_id, None)
