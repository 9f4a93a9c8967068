"""A small subset of FHIR observation resources."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ObservationStatus(Enum):
    PRELIMINARY = "Preliminary"
    FINAL = "Final"
    AMENDED = "Amended"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class CodeableConcept:
    code: str
    display: str | None = None


@dataclass(frozen=True)
class Quantity:
    value: float
    unit: str


def _require(data: Mapping[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    if key not in data:
        raise ValueError(f"missing field {key!r}")
    value = data[key]
    if not isinstance(value, kind) or isinstance(value, bool):
        raise ValueError(f"field {key!r} has the wrong type: {value!r}")
    return value


def _optional_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string or null")
    return value


@dataclass(frozen=True, kw_only=True)
class Observation:
    """Simplified FHIR Observation."""

    id: str | None = None
    status: ObservationStatus
    code: CodeableConcept
    value: Quantity | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready representation."""
        return {
            "id": self.id,
            "status": self.status.value,
            "code": {"code": self.code.code, "display": self.code.display},
            "value": (
                None
                if self.value is None
                else {"value": self.value.value, "unit": self.value.unit}
            ),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Observation:
        """Build an observation from its dictionary form; raise ValueError if malformed."""
        if not isinstance(data, Mapping):
            raise ValueError("observation must be an object")
        status_name = _require(data, "status", str)
        try:
            status = ObservationStatus(status_name)
        except ValueError:
            raise ValueError(f"unknown observation status {status_name!r}") from None

        code_data = _require(data, "code", Mapping)
        code = CodeableConcept(
            code=_require(code_data, "code", str),
            display=_optional_str(code_data, "display"),
        )

        value_data = data.get("value")
        if value_data is None:
            value = None
        elif isinstance(value_data, Mapping):
            value = Quantity(
                value=float(_require(value_data, "value", (int, float))),
                unit=_require(value_data, "unit", str),
            )
        else:
            raise ValueError("field 'value' must be an object or null")

        return cls(id=_optional_str(data, "id"), status=status, code=code, value=value)