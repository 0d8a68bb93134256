"""
Shared result shapes produced by every provider adapter.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List


class ProviderName(str, Enum):
    """Supported upstream providers."""
    SMS_ACTIVATE = "sms_activate"
    SMSPVA = "smspva"
    ANOSIM = "anosim"
    GOGETSMS = "gogetsms"


class RentalMode(str, Enum):
    """Long lease (rental) or single-SMS lease (activation)."""
    RENTAL = "rental"
    ACTIVATION = "activation"


class PhoneStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class MessageSource(str, Enum):
    API = "api"
    WEBHOOK = "webhook"


@dataclass
class RentalResult:
    """A freshly leased number, normalized across providers."""
    phone_number: str
    rent_id: str
    service: str
    country: str
    end_date: Optional[datetime] = None
    cost: Optional[float] = None
    provider: Optional[str] = None
    mode: str = RentalMode.RENTAL.value
    order_id: Optional[str] = None
    order_booking_id: Optional[str] = None
    provider_id: Optional[str] = None
    external_id: Optional[str] = None
    auto_renewal: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["end_date"] = self.end_date.isoformat() if self.end_date else None
        return data


@dataclass
class SmsMessage:
    """One inbound SMS in the shared shape."""
    sender: str
    message: str
    received_at: datetime
    code: Optional[str] = None

    def dedup_key(self) -> tuple:
        return (self.sender, self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "message": self.message,
            "received_at": self.received_at.isoformat(),
            "code": self.code,
        }


@dataclass
class RentalStatus:
    """Live state of one lease: its messages plus provider bookkeeping."""
    external_id: str
    messages: List[SmsMessage] = field(default_factory=list)
    status: Optional[str] = None
    end_date: Optional[datetime] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "status": self.status,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "messages": [m.to_dict() for m in self.messages],
            "quantity": len(self.messages),
        }


@dataclass
class ActiveRental:
    """An entry of a provider's current lease list."""
    external_id: str
    phone_number: str
    provider: str
    service: Optional[str] = None
    country: Optional[str] = None
    status: Optional[str] = None
    end_date: Optional[datetime] = None
    auto_renewal: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["end_date"] = self.end_date.isoformat() if self.end_date else None
        return data


@dataclass
class BookingResolution:
    """
    The provider's current identifiers for a stored phone number.

    Produced by the resolver when the identifier saved at rental time no
    longer returns data; used to repair the stored row.
    """
    phone_number: str
    booking_id: str
    order_id: Optional[str] = None
    is_active: bool = True
    end_date: Optional[datetime] = None

    @property
    def status(self) -> str:
        return PhoneStatus.ACTIVE.value if self.is_active else PhoneStatus.EXPIRED.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phoneNumber": self.phone_number,
            "bookingId": self.booking_id,
            "orderId": self.order_id,
            "isActive": self.is_active,
            "endDate": self.end_date.isoformat() if self.end_date else None,
        }


@dataclass
class ExtensionResult:
    """Outcome of extending a lease."""
    external_id: str
    end_date: Optional[datetime] = None
    cost: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "cost": self.cost,
        }
