"""Domain types shared by the chat receptionist pipeline.

Everything here is a plain value object.  Nothing in this module talks to
the network or the database; the stores and the model gateway produce and
consume these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ── Conversation ─────────────────────────────────────────────────────


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    """One message in the dialogue.  Immutable once created."""

    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


# ── Booking action ───────────────────────────────────────────────────

CREATE_APPOINTMENT = "create_appointment"


class BookingIntent(BaseModel):
    """The ``create_appointment`` payload the model emits once it knows all
    five booking fields.

    Accepts the camelCase keys used in the prompt grammar as well as the
    snake_case field names.  Values are stripped; blanks are rejected so
    that a half-filled block is treated as "no action".
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    kind: Literal["create_appointment"] = CREATE_APPOINTMENT
    patient_name: str = Field(..., alias="patientName", min_length=1)
    service_name: str = Field(..., alias="serviceName", min_length=1)
    date: str = Field(..., min_length=1)
    time: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)

    @field_validator("patient_name", "service_name", "date", "time", "phone", mode="before")
    @classmethod
    def _coerce_and_strip(cls, value: Any) -> Any:
        # Models sometimes emit phone numbers and hours as bare integers.
        if isinstance(value, int | float) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str):
            return value.strip()
        return value


# ── Catalog & appointments ───────────────────────────────────────────


@dataclass(frozen=True)
class ServiceRef:
    """Read-only projection of a row in the ``services`` table."""

    id: str
    name: str


@dataclass(frozen=True)
class ResolvedBooking:
    """A booking intent after service resolution and time normalization."""

    patient_name: str
    service_name: str
    service_id: str | None
    date: str
    time: str
    phone: str
    provenance: str


@dataclass
class AppointmentRecord:
    """A row destined for the ``appointments`` table."""

    patient_name: str
    patient_phone: str
    service_id: str | None
    start_time: str
    end_time: str
    status: str = "confirmed"
    notes: str = ""
    patient_email: str | None = None
    recurring_group_id: str | None = None

    def to_row(self) -> dict[str, Any]:
        """Serialise to the column layout of the ``appointments`` table.

        ``service_id`` is always sent (null is a valid value); the optional
        form-only columns are omitted when unset.
        """
        row: dict[str, Any] = {
            "patient_name": self.patient_name,
            "patient_phone": self.patient_phone,
            "service_id": self.service_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status,
            "notes": self.notes,
        }
        if self.patient_email:
            row["patient_email"] = self.patient_email
        if self.recurring_group_id:
            row["recurring_group_id"] = self.recurring_group_id
        return row


@dataclass(frozen=True)
class BookingOutcome:
    success: bool
    record: AppointmentRecord | None = None
    error: str | None = None


# ── Provider attempts ────────────────────────────────────────────────


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    OTHER_ERROR = "other_error"


@dataclass(frozen=True)
class ProviderAttempt:
    provider_id: str
    outcome: AttemptOutcome


@dataclass(frozen=True)
class Ok:
    content: str


@dataclass(frozen=True)
class RateLimited:
    message: str


@dataclass(frozen=True)
class OtherError:
    message: str


ProviderResult = Ok | RateLimited | OtherError


@dataclass(frozen=True)
class Completion:
    """The first successful completion of a failover loop."""

    provider_id: str
    content: str
