from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, field_validator


class LinkPrecedence(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class Contact(BaseModel):
    """One row of the Contact table, detached from its connection."""

    model_config = ConfigDict(frozen=True)

    id: int
    phoneNumber: Optional[str] = None
    email: Optional[str] = None
    linkedId: Optional[int] = None
    linkPrecedence: LinkPrecedence
    createdAt: datetime
    updatedAt: datetime
    deletedAt: Optional[datetime] = None

    @property
    def is_primary(self) -> bool:
        return self.linkPrecedence == LinkPrecedence.PRIMARY

    @property
    def root_id(self) -> Optional[int]:
        return self.id if self.is_primary else self.linkedId


class IdentifyRequest(BaseModel):
    email: Optional[StrictStr] = None
    phoneNumber: Optional[Union[StrictStr, StrictInt]] = None

    @field_validator("email")
    @classmethod
    def blank_email_is_absent(cls, value):
        return value or None

    @field_validator("phoneNumber")
    @classmethod
    def phone_as_string(cls, value):
        if value is None:
            return None
        return str(value) or None


class ContactResponse(BaseModel):
    primaryContactId: int
    emails: List[str]
    phoneNumbers: List[str]
    secondaryContactIds: List[int]


class FinalResponse(BaseModel):
    contact: ContactResponse
