"""Records produced by portal strategies."""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional


@dataclass
class PermitRecord:
    """
    One permit as scraped, before classification and persistence.

    Raw strings stay raw here (status, permit_type); normalization happens
    when the record is saved.
    """
    permit_number: str
    city: str
    state: str
    title: Optional[str] = None
    description: Optional[str] = None
    address: Optional[str] = None
    zip_code: Optional[str] = None
    permit_type: Optional[str] = None  # Raw type text from the portal
    status: Optional[str] = None  # Raw status text, or a Status name
    value: Optional[float] = None
    applied_date: Optional[datetime] = None
    applied_date_string: Optional[str] = None
    expiration_date: Optional[datetime] = None
    source_url: Optional[str] = None
    licensed_professional_text: Optional[str] = None
    # Explicitly scraped contractors: [{"license_no": ..., "name": ..., "role": ...}]
    contractors: list[dict] = field(default_factory=list)
    # Batch that produced this record (ID-based portals only)
    source_batch: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dictionary."""
        data = asdict(self)
        for key in ('applied_date', 'expiration_date'):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PermitRecord":
        """Create from dictionary (e.g., loaded from a _raw.json file)."""
        data = dict(data)
        for key in ('applied_date', 'expiration_date'):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        return cls(**data)


@dataclass
class ExtractionResult:
    """What a strategy hands back for one city run."""
    records: list[PermitRecord] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "ExtractionResult":
        # Partial results are discarded on failure
        return cls(records=[], success=False, error=error)
