"""Raw applicant rows as handed over by the spreadsheet importer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class ApplicantRecord:
    """One uploaded row. Contains personal data; never exported verbatim.

    Attributes
    ----------
    row_index : int
        Spreadsheet row number (header is row 1).
    member_id, name, birth_date, mobile, zip_code, address : str
        Identity and contact fields used for validation and classification.
    registered_at : str
        Registration time as uploaded; used by the duplicate policy.
    """

    row_index: int
    member_id: str = ""
    name: str = ""
    birth_date: str = ""
    mobile: str = ""
    zip_code: str = ""
    address: str = ""
    registered_at: str = ""

    @classmethod
    def from_row(cls, row_index: int, row: Mapping[str, Any]) -> "ApplicantRecord":
        """Build a record from a column-name mapping, trimming every cell."""

        def cell(key: str) -> str:
            value = row.get(key)
            return "" if value is None else str(value).strip()

        return cls(
            row_index=row_index,
            member_id=cell("member_id"),
            name=cell("name"),
            birth_date=cell("birth_date"),
            mobile=cell("mobile"),
            zip_code=cell("zip_code"),
            address=cell("address"),
            registered_at=cell("registered_at"),
        )


__all__ = ["ApplicantRecord"]
