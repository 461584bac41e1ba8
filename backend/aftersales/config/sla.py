from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping

DEFAULT_UNDER_WARRANTY_HOURS = 48
DEFAULT_OUT_OF_WARRANTY_HOURS = 72
DEFAULT_ONSITE_BUFFER_HOURS = 24


@dataclass(frozen=True)
class SlaPolicy:
    under_warranty_hours: int = DEFAULT_UNDER_WARRANTY_HOURS
    out_of_warranty_hours: int = DEFAULT_OUT_OF_WARRANTY_HOURS
    onsite_buffer_hours: int = DEFAULT_ONSITE_BUFFER_HOURS

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> 'SlaPolicy':
        """Build from app.config / os.environ style mapping (values may be strings)."""
        try:
            return cls(
                under_warranty_hours=int(cfg.get('SLA_UNDER_WARRANTY_HOURS', DEFAULT_UNDER_WARRANTY_HOURS)),
                out_of_warranty_hours=int(cfg.get('SLA_OUT_OF_WARRANTY_HOURS', DEFAULT_OUT_OF_WARRANTY_HOURS)),
                onsite_buffer_hours=int(cfg.get('SLA_ONSITE_BUFFER_HOURS', DEFAULT_ONSITE_BUFFER_HOURS)),
            )
        except (TypeError, ValueError):
            raise ValueError('SLA hour settings must be integers')
