"""
Company-name matching.

Opportunities and raw contacts reference companies by free-text name, not by
id, so every name-based join goes through this module. normalize_company_name
is a heuristic: "ACME Co., Ltd.", "acme co" and " Acme  (Taiwan) " all compare
equal, but two genuinely different spellings of a legal name will not.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional

from .models import Company

_PARENTHETICAL = re.compile(r"[\(（][^\)）]*[\)）]")
_CJK_SUFFIX = re.compile(r"股份有限公司|有限公司|公司")
_LEGAL_SUFFIX = re.compile(
    r"[\s,\.]*\b(?:co|company|corp|corporation|inc|incorporated|ltd|limited|llc|plc|gmbh)\b\.?$"
)
_WHITESPACE = re.compile(r"\s+")


def normalize_company_name(name: Optional[str]) -> str:
    """
    Lower-case, drop parenthetical annotations and legal-entity suffixes, and
    collapse whitespace. Returns "" for empty input.
    """
    if not name:
        return ""
    base = _WHITESPACE.sub(" ", name.lower().strip())
    s = _PARENTHETICAL.sub(" ", base)
    s = _CJK_SUFFIX.sub("", s)
    s = _WHITESPACE.sub(" ", s).strip()
    while True:
        stripped = _LEGAL_SUFFIX.sub("", s).strip(" ,.")
        if stripped == s or not stripped:
            break
        s = stripped
    # A name that is nothing but a suffix ("Co.") still needs a key
    return s.strip(" ,.") or base


def same_company(a: Optional[str], b: Optional[str]) -> bool:
    na = normalize_company_name(a)
    return bool(na) and na == normalize_company_name(b)


class CompanyIndex:
    """
    Normalized-name → company lookup built from one company snapshot.

    The first company wins when two rows normalize to the same key, matching
    the order a linear scan of the sheet would find them.
    """

    def __init__(self, companies: Iterable[Company]) -> None:
        self._by_name: dict[str, Company] = {}
        for company in companies:
            key = normalize_company_name(company.company_name)
            if key and key not in self._by_name:
                self._by_name[key] = company

    def find(self, name: Optional[str]) -> Optional[Company]:
        return self._by_name.get(normalize_company_name(name))

    def resolve_company_id(self, name: Optional[str]) -> Optional[str]:
        """Company id for a free-text company name, or None."""
        company = self.find(name)
        return company.company_id if company else None

    def __len__(self) -> int:
        return len(self._by_name)
