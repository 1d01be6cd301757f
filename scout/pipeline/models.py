"""
Case study data models.

Case studies are serialized with camelCase keys because the published
dataset is read by the web catalog.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

STATUS_VERIFIED = "verified"
STATUS_SPECULATIVE = "speculative"
CASE_STUDY_STATUSES = (STATUS_VERIFIED, STATUS_SPECULATIVE)

DEFAULT_PROFIT_MECHANISM = "Unspecified (see proof sources)"


def normalize_status(value: Any) -> str:
    """'verified' stays verified; anything else (incl. legacy 'speculation') is speculative."""
    return STATUS_VERIFIED if str(value or "").strip().lower() == STATUS_VERIFIED else STATUS_SPECULATIVE


@dataclass
class ProofSource:
    label: str
    url: str
    kind: Optional[str] = None
    excerpt: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"label": self.label, "url": self.url}
        if self.kind:
            d["kind"] = self.kind
        if self.excerpt:
            d["excerpt"] = self.excerpt
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProofSource":
        return cls(
            label=str(data.get("label", "")),
            url=str(data.get("url", "")),
            kind=data.get("kind") or None,
            excerpt=data.get("excerpt") or None,
        )


@dataclass
class CaseStudy:
    id: str
    date: str  # YYYY-MM-DD
    title: str
    summary: str
    description: str
    profit_mechanisms: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    proof_sources: List[ProofSource] = field(default_factory=list)
    status: str = STATUS_SPECULATIVE

    @property
    def proof_urls(self) -> List[str]:
        return [p.url for p in self.proof_sources]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "title": self.title,
            "summary": self.summary,
            "description": self.description,
            "profitMechanisms": list(self.profit_mechanisms),
            "tags": list(self.tags),
            "proofSources": [p.to_dict() for p in self.proof_sources],
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaseStudy":
        return cls(
            id=str(data.get("id", "")),
            date=str(data.get("date", "")),
            title=str(data.get("title", "")),
            summary=str(data.get("summary", "")),
            description=str(data.get("description", "")),
            profit_mechanisms=[str(m) for m in (data.get("profitMechanisms") or [])],
            tags=[str(t) for t in (data.get("tags") or [])],
            proof_sources=[ProofSource.from_dict(p) for p in (data.get("proofSources") or []) if isinstance(p, dict)],
            status=normalize_status(data.get("status")),
        )


def load_dataset(items: List[Dict[str, Any]]) -> List[CaseStudy]:
    return [CaseStudy.from_dict(item) for item in items if isinstance(item, dict)]


def dump_dataset(dataset: List[CaseStudy]) -> List[Dict[str, Any]]:
    return [cs.to_dict() for cs in dataset]
