"""Pydantic models for the email dispatch service.

Models:
    - EmailStatus: outcome of a single dispatch attempt
    - EmailRequest: payload accepted by ``POST /sending-email``
    - EmailRecord: persisted, immutable outcome of one dispatch attempt
    - EmailPage: one page of records plus paging metadata
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field


def _reject_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


NonBlankStr = Annotated[str, AfterValidator(_reject_blank)]


class EmailStatus(str, Enum):
    """Terminal status of a dispatch attempt.

    Attributes:
        SENT: The transport accepted the message.
        ERROR: The transport reported a failure.
    """

    SENT = "SENT"
    ERROR = "ERROR"


class EmailRequest(BaseModel):
    """Email submitted by a calling service."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    owner_ref: NonBlankStr = Field(alias="ownerRef")
    email_from: EmailStr = Field(alias="emailFrom")
    email_to: EmailStr = Field(alias="emailTo")
    subject: NonBlankStr
    text: NonBlankStr


class EmailRecord(BaseModel):
    """Stored outcome of one dispatch attempt as returned by the API."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    owner_ref: str = Field(alias="ownerRef")
    email_from: str = Field(alias="emailFrom")
    email_to: str = Field(alias="emailTo")
    subject: str
    text: str
    sent_at: datetime = Field(alias="sentAt")
    status: EmailStatus

    def to_row(self) -> Dict[str, Any]:
        """Return the column mapping used by :class:`~email_dispatch.persistence.Persistence`."""
        return {
            "id": self.id,
            "owner_ref": self.owner_ref,
            "email_from": self.email_from,
            "email_to": self.email_to,
            "subject": self.subject,
            "text": self.text,
            "sent_at": self.sent_at.isoformat(timespec="microseconds"),
            "status": self.status.value,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EmailRecord":
        return cls(
            id=row["id"],
            owner_ref=row["owner_ref"],
            email_from=row["email_from"],
            email_to=row["email_to"],
            subject=row["subject"],
            text=row["text"],
            sent_at=datetime.fromisoformat(row["sent_at"]),
            status=EmailStatus(row["status"]),
        )


class EmailPage(BaseModel):
    """A bounded, ordered subset of records."""

    model_config = ConfigDict(populate_by_name=True)

    content: List[EmailRecord]
    page: int
    size: int
    total_elements: int = Field(alias="totalElements")
    total_pages: int = Field(alias="totalPages")
    sort: str
    direction: str
