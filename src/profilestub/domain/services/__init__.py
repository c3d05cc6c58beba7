"""Domain services for ProfileStub.

Services contain the normalization and coercion logic. They have no
dependencies on infrastructure.
"""

from profilestub.domain.services.date_parser import (
    format_date,
    format_datetime,
    parse_datetime,
)
from profilestub.domain.services.identity_registry import (
    NAME_PATTERN,
    IdentityRegistry,
)
from profilestub.domain.services.raw_structure import RawKind, classify
from profilestub.domain.services.structure_normalizer import (
    StructureNormalizer,
    normalize_structure,
)
from profilestub.domain.services.value_coercion import (
    ZERO_DATE,
    ZERO_DATETIME,
    coerce_value,
    default_value,
    filter_fields,
)

__all__ = [
    "IdentityRegistry",
    "NAME_PATTERN",
    "RawKind",
    "StructureNormalizer",
    "ZERO_DATE",
    "ZERO_DATETIME",
    "classify",
    "coerce_value",
    "default_value",
    "filter_fields",
    "format_date",
    "format_datetime",
    "normalize_structure",
    "parse_datetime",
]
