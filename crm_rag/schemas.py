"""
CRM record schemas.

Contacts, accounts, deals and activities are separate fixed models joined
in a discriminated union on `record_type`.  Each exposes the same three
hooks the query layer needs:

    searchable_fields()  lowercase field values tested against filter terms
    display_name         short label used in clarification prompts
    format()             a FormattedRecord row for table display
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class RecordType(str, Enum):
    CONTACTS = "contacts"
    ACCOUNTS = "accounts"
    DEALS = "deals"
    ACTIVITIES = "activities"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FormattedRecord(BaseModel):
    """Flat, display-ready row shared by every record type."""

    id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""
    title: str = ""
    status: str = ""
    type: str = ""
    source: str = ""
    created: str = ""
    industry: Optional[str] = None
    size: Optional[str] = None
    website: Optional[str] = None
    value: Optional[str] = None
    stage: Optional[str] = None
    probability: Optional[str] = None
    due_date: Optional[str] = None
    subject: Optional[str] = None


class _RecordBase(BaseModel):
    id: str
    team_id: str = ""
    created_at: datetime = Field(default_factory=_utcnow)

    def _base_row(self, **fields) -> FormattedRecord:
        return FormattedRecord(id=self.id, created=self.created_at.date().isoformat(), **fields)


class Contact(_RecordBase):
    record_type: Literal["contacts"] = "contacts"
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""
    title: str = ""
    lead_status: str = ""
    contact_type: str = ""
    source: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def display_name(self) -> str:
        return self.full_name

    def searchable_fields(self) -> list[str]:
        return [
            f.lower()
            for f in (self.full_name, self.first_name, self.last_name,
                      self.email, self.company, self.title)
        ]

    def format(self) -> FormattedRecord:
        return self._base_row(
            name=self.full_name,
            email=self.email,
            phone=self.phone,
            company=self.company,
            title=self.title,
            status=self.lead_status,
            type=self.contact_type,
            source=self.source,
        )


class Account(_RecordBase):
    record_type: Literal["accounts"] = "accounts"
    name: str = ""
    industry: str = ""
    size: str = ""
    website: str = ""

    @property
    def display_name(self) -> str:
        return self.name

    def searchable_fields(self) -> list[str]:
        return [f.lower() for f in (self.name, self.industry, self.website)]

    def format(self) -> FormattedRecord:
        return self._base_row(
            name=self.name,
            company=self.name,
            industry=self.industry,
            size=self.size,
            website=self.website,
        )


class Deal(_RecordBase):
    record_type: Literal["deals"] = "deals"
    name: str = ""
    stage: str = ""
    value: str = ""
    probability: Optional[float] = None

    @property
    def display_name(self) -> str:
        return self.name

    def searchable_fields(self) -> list[str]:
        return [f.lower() for f in (self.name, self.stage, self.value)]

    def format(self) -> FormattedRecord:
        return self._base_row(
            name=self.name,
            status=self.stage,
            value=self.value,
            stage=self.stage,
            probability="" if self.probability is None else f"{self.probability:g}",
        )


class Activity(_RecordBase):
    record_type: Literal["activities"] = "activities"
    type: str = ""
    subject: str = ""
    status: str = ""
    due_date: str = ""

    @property
    def display_name(self) -> str:
        return self.subject

    def searchable_fields(self) -> list[str]:
        return [f.lower() for f in (self.type, self.subject, self.status)]

    def format(self) -> FormattedRecord:
        return self._base_row(
            name=self.subject,
            status=self.status,
            type=self.type,
            due_date=self.due_date,
            subject=self.subject,
        )


Record = Annotated[
    Union[Contact, Account, Deal, Activity],
    Field(discriminator="record_type"),
]
