import math
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple, Type, Union

from citenet.constants import YEAR_DIFF_RANGE, YEAR_RANGE


@dataclass(frozen=True)
class CitationRecord:
    """One row of the citation source: citing paper -> cited paper."""

    citing_paperid: str
    cited_paperid: str
    year: int
    ref_year: int
    year_diff: int


@dataclass(frozen=True)
class AffiliationRecord:
    """One row of the affiliation source: an author on a paper."""

    paperid: str
    author_position: str
    authorid: str
    institutionid: str
    raw_affiliation_string: str = ""


@dataclass(frozen=True)
class PublicationRecord:
    """One row of the publication source: a paper and its patent citations."""

    paperid: str
    year: int
    patent_count: int


Record = Union[CitationRecord, AffiliationRecord, PublicationRecord]

Range = Tuple[float, float]


@dataclass(frozen=True)
class RecordSchema:
    """
    Validation rules for one tabular source.

    Attributes:
        name: Label used in log messages.
        record_type: Dataclass each valid row is converted to.
        string_fields: Required string columns (non-empty after trimming).
        int_fields: Required integer columns and their inclusive ranges.
        optional_fields: Columns that may be absent or blank, with defaults.
    """

    name: str
    record_type: Type
    string_fields: Tuple[str, ...]
    int_fields: Dict[str, Range] = field(default_factory=dict)
    optional_fields: Dict[str, str] = field(default_factory=dict)

    @property
    def required_columns(self) -> Tuple[str, ...]:
        numeric = tuple(f for f in self.int_fields if f not in self.optional_fields)
        return self.string_fields + numeric

    def convert(self, row: Mapping[str, object]) -> Tuple[Optional[Record], str]:
        """
        Validates a raw row and builds the typed record.

        Returns:
            (record, "") on success, (None, reason) when the row is invalid.
        """
        values: Dict[str, object] = {}

        for name in self.string_fields:
            value = _clean(row.get(name))
            if not value:
                return None, f"missing {name}"
            values[name] = value

        for name, (low, high) in self.int_fields.items():
            raw = _clean(row.get(name))
            if not raw and name in self.optional_fields:
                raw = self.optional_fields[name]
            number = _parse_int(raw)
            if number is None:
                return None, f"{name} is not a number: {raw!r}"
            if number < low or number > high:
                return None, f"{name}={number} outside [{low}, {high}]"
            values[name] = number

        for name, default in self.optional_fields.items():
            if name not in values:
                values[name] = _clean(row.get(name)) or default

        return self.record_type(**values), ""


def _clean(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def _parse_int(raw: str) -> Optional[int]:
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number != int(number):
        return None
    return int(number)


CITATION_SCHEMA = RecordSchema(
    name="citations",
    record_type=CitationRecord,
    string_fields=("citing_paperid", "cited_paperid"),
    int_fields={
        "year": YEAR_RANGE,
        "ref_year": YEAR_RANGE,
        "year_diff": YEAR_DIFF_RANGE,
    },
)

AFFILIATION_SCHEMA = RecordSchema(
    name="affiliations",
    record_type=AffiliationRecord,
    string_fields=("paperid", "author_position", "authorid", "institutionid"),
    optional_fields={"raw_affiliation_string": ""},
)

PUBLICATION_SCHEMA = RecordSchema(
    name="publications",
    record_type=PublicationRecord,
    string_fields=("paperid",),
    int_fields={"year": YEAR_RANGE, "patent_count": (0, math.inf)},
    optional_fields={"patent_count": "0"},
)

SCHEMAS: Dict[str, RecordSchema] = {
    s.name: s for s in (CITATION_SCHEMA, AFFILIATION_SCHEMA, PUBLICATION_SCHEMA)
}

