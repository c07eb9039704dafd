"""
Data models for the Gate Access service.

Domain records are dataclasses that round-trip to the plain dicts kept in
the document store. API payloads are pydantic models.
"""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ResultStatus(str, Enum):
    """Response envelope status values."""
    SUCCESS = "success"
    INVALID = "invalid"
    ERROR = "error"


class AuthorizationDecision(str, Enum):
    """Outcome of a gate authorization check."""
    AUTHORIZED = "authorized"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated caller as reported by the identity provider."""
    user_id: str
    claims: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class Address:
    """Mailing address submitted by a user. Immutable once recorded."""
    country: str
    administrative_area: str
    locality: str
    postal_code: str
    thoroughfare: str
    premise: str
    unit: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Address":
        return cls(
            country=data["country"],
            administrative_area=data.get("administrative_area", ""),
            locality=data.get("locality", ""),
            postal_code=data["postal_code"],
            thoroughfare=data["thoroughfare"],
            premise=str(data["premise"]),
            unit=data.get("unit"),
        )


@dataclass(frozen=True)
class ServiceAreaRule:
    """Permissible address range served by a gate group.

    The premise range is exclusive on both ends.
    """
    country: str
    postal_code: str
    thoroughfare: str
    premise_range_start: str
    premise_range_stop: str
    administrative_area: str = ""
    locality: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceAreaRule":
        return cls(
            country=data["country"],
            postal_code=data["postal_code"],
            thoroughfare=data["thoroughfare"],
            premise_range_start=str(data["premise_range_start"]),
            premise_range_stop=str(data["premise_range_stop"]),
            administrative_area=data.get("administrative_area", ""),
            locality=data.get("locality", ""),
        )


@dataclass
class Gate:
    """A physical gate belonging to one gate group."""
    gate_id: str
    gate_group_id: str
    key: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, gate_id: str, gate_group_id: str, data: Dict[str, Any]) -> "Gate":
        return cls(
            gate_id=gate_id,
            gate_group_id=gate_group_id,
            key=data.get("key") or None,
            name=data.get("name"),
            description=data.get("description"),
        )


@dataclass
class GateGroup:
    """A cluster of gates sharing service-area rules."""
    gate_group_id: str
    rules: List[ServiceAreaRule] = field(default_factory=list)
    gates: List[Gate] = field(default_factory=list)
    name: Optional[str] = None
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None
    owner_phone: Optional[str] = None

    @classmethod
    def from_dict(cls, gate_group_id: str, data: Dict[str, Any]) -> "GateGroup":
        return cls(
            gate_group_id=gate_group_id,
            rules=[
                ServiceAreaRule.from_dict(rule)
                for rule in data.get("permissible_address_ranges", [])
            ],
            name=data.get("name"),
            owner_name=data.get("owner_name"),
            owner_email=data.get("owner_email"),
            owner_phone=data.get("owner_phone"),
        )


@dataclass
class PermissionEntry:
    """Per-gate grant on a user."""
    address_reference: str
    gate_reference: str
    verified: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PermissionEntry":
        return cls(
            address_reference=data["address_reference"],
            gate_reference=data["gate_reference"],
            verified=bool(data.get("verified", False)),
        )


@dataclass
class VerificationRecord:
    """Code challenge proving residency at a submitted address."""
    verification_code: str
    created_at: datetime
    verified_at: Optional[datetime] = None
    mailed_at: Optional[datetime] = None

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verification_code": self.verification_code,
            "created_at": self.created_at.isoformat(),
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "mailed_at": self.mailed_at.isoformat() if self.mailed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationRecord":
        return cls(
            verification_code=str(data["verification_code"]),
            created_at=_parse_timestamp(data["created_at"]),
            verified_at=_parse_timestamp(data.get("verified_at")),
            mailed_at=_parse_timestamp(data.get("mailed_at")),
        )


@dataclass
class AuthorizationResult:
    """Result of GateAuthorizer.authorize."""
    decision: AuthorizationDecision
    gate: Optional[Gate] = None
    reason: Optional[str] = None

    @property
    def authorized(self) -> bool:
        return self.decision == AuthorizationDecision.AUTHORIZED


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# API payloads

class AddressRequest(BaseModel):
    """Request model for submitting an address."""
    country: str = Field(..., min_length=1, description="Country code")
    administrative_area: str = Field("", description="State, province or region")
    locality: str = Field("", description="City or town")
    postal_code: str = Field(..., min_length=1, description="Postal code")
    thoroughfare: str = Field(..., min_length=1, description="Street name")
    premise: str = Field(..., min_length=1, description="House number")
    unit: Optional[str] = Field(None, description="Apartment or unit")

    def to_address(self) -> Address:
        return Address(
            country=self.country,
            administrative_area=self.administrative_area,
            locality=self.locality,
            postal_code=self.postal_code,
            thoroughfare=self.thoroughfare,
            premise=self.premise,
            unit=self.unit,
        )


class VerifyAddressRequest(BaseModel):
    """Request model for submitting a verification code."""
    verification_code: str = Field(..., min_length=1, description="Code received by mail")


class PulseRequest(BaseModel):
    """Request model for the operator actuator pulse."""
    label: str = Field(..., description="Display label")
    color: str = Field("blue", description="Indicator color")


class AccessResponse(BaseModel):
    """Response envelope shared by every gate access entry point."""
    status: ResultStatus
    code: int
    message: Optional[str] = None
    address_ref: Optional[str] = None
    address_id: Optional[str] = None


class PermissionListResponse(BaseModel):
    """Response model for the caller's permission map."""
    user_id: str
    permissible_gates: Dict[str, Dict[str, Any]]
