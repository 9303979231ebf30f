"""Data models shared by the classification, matching and review stages."""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional


class PropertyType(str, Enum):
    RESIDENTIAL = 'RESIDENTIAL'
    COMMERCIAL = 'COMMERCIAL'
    OFFICE = 'OFFICE'
    INDUSTRIAL = 'INDUSTRIAL'
    UNKNOWN = 'UNKNOWN'


class PermitType(str, Enum):
    BUILDING = 'BUILDING'
    ELECTRICAL = 'ELECTRICAL'
    PLUMBING = 'PLUMBING'
    HVAC = 'HVAC'
    ROOFING = 'ROOFING'
    DEMOLITION = 'DEMOLITION'
    ADDITION = 'ADDITION'
    ADU = 'ADU'
    BATHROOM = 'BATHROOM'
    KITCHEN = 'KITCHEN'
    SOLAR = 'SOLAR'
    POOL_AND_HOT_TUB = 'POOL_AND_HOT_TUB'
    REMODEL = 'REMODEL'
    NEW_CONSTRUCTION = 'NEW_CONSTRUCTION'


@dataclass
class StageResult:
    """Outcome of one sub-classifier (property type or permit type)."""
    value: Optional[Enum]
    confidence: float
    reasoning: list[str] = field(default_factory=list)


@dataclass
class ClassificationResult:
    property_type: Optional[PropertyType]
    permit_type: Optional[PermitType]
    confidence: float  # min of the two sub-confidences
    reasoning: list[str] = field(default_factory=list)
    contractor_id: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dictionary."""
        return {
            'property_type': self.property_type.value if self.property_type else None,
            'permit_type': self.permit_type.value if self.permit_type else None,
            'confidence': self.confidence,
            'reasoning': list(self.reasoning),
            'contractor_id': self.contractor_id,
        }


@dataclass
class ContractorInfo:
    """Fields pulled out of a licensed-professional text blob."""
    license_number: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ContractorMatch:
    contractor_id: str
    confidence: float
    method: str  # license_number, name, phone, name_phone

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FailedRun:
    """A city run that produced nothing, waiting for someone to look at it."""
    city: str
    error: str
    started_at: str
    finished_at: str

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "FailedRun":
        """Create from dictionary (e.g., loaded from JSON)."""
        return cls(**data)
