"""
Data schemas for the College Gate Pass system.

The persisted document and the HTTP payloads both use camelCase keys
(``studentId``, ``returnTime``...). Models expose snake_case attributes
and convert through an alias generator, so dump with ``by_alias=True``.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_serializer, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

Role = Literal['Student', 'Moderator', 'Gatekeeper']
Status = Literal['Pending', 'Approved', 'Rejected']
REVIEW_OUTCOMES = ('Approved', 'Rejected')


def to_iso(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a trailing ``Z``."""
    return value.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StoredModel(CamelModel):
    """Persisted record. Keys this code does not know about are kept and written back."""

    model_config = ConfigDict(extra='allow')


class User(StoredModel):
    id: str = Field(..., description="Login id, unique across users")
    name: str
    password: str = Field(..., description="Compared as plain text")
    role: Role


class UserPublic(CamelModel):
    id: str
    name: str
    role: Role


class GatePassRequest(StoredModel):
    id: str = Field(..., description="Prefix plus creation epoch milliseconds")
    student_id: str
    student_name: str
    reason: str
    return_time: str
    status: Status = 'Pending'
    timestamp: datetime
    moderator_id: Optional[str] = None
    moderator_name: Optional[str] = None
    moderator_remarks: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    used: bool = False
    used_at: Optional[datetime] = None

    @field_validator('timestamp', 'reviewed_at', 'used_at')
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_serializer('timestamp', 'reviewed_at', 'used_at')
    def serialize_instant(self, value: Optional[datetime]) -> Optional[str]:
        return to_iso(value) if value is not None else None

    def to_public(self) -> dict:
        return self.model_dump(by_alias=True, mode='json')


class Dataset(CamelModel):
    """The whole persisted document; always loaded and saved as one unit.

    Records that fail validation are held aside and written back as they
    were read, so a single odd record never costs the rest of the file.
    """

    model_config = ConfigDict(extra='allow')

    users: List[User] = Field(default_factory=list)
    requests: List[GatePassRequest] = Field(default_factory=list)

    _unparsed: Dict[str, list] = PrivateAttr(default_factory=lambda: {'users': [], 'requests': []})
    _read_only: bool = PrivateAttr(default=False)

    @property
    def unparsed(self) -> Dict[str, list]:
        return self._unparsed

    @property
    def read_only(self) -> bool:
        """True when the document on disk could not be understood and must not be replaced."""
        return self._read_only

    @classmethod
    def from_document(cls, raw: Any) -> 'Dataset':
        """Validate a decoded JSON document record by record."""
        if not isinstance(raw, dict):
            return cls.unusable('top level is %s, expected an object' % type(raw).__name__)
        collections = {'users': User, 'requests': GatePassRequest}
        for key in collections:
            if not isinstance(raw.get(key, []), list):
                return cls.unusable('%r is not a list' % key)

        dataset = cls.model_validate({k: v for k, v in raw.items() if k not in collections})
        for key, model in collections.items():
            parsed = getattr(dataset, key)
            for record in raw.get(key, []):
                try:
                    parsed.append(model.model_validate(record))
                except ValidationError as e:
                    logger.warning('Keeping unreadable %s record as is: %s', key, e.errors()[0]['msg'])
                    dataset._unparsed[key].append(record)
        return dataset

    @classmethod
    def unusable(cls, reason: str) -> 'Dataset':
        logger.error('Data document is not usable (%s); writes are disabled', reason)
        dataset = cls()
        dataset._read_only = True
        return dataset

    def to_document(self) -> dict:
        document = self.model_dump(by_alias=True, mode='json')
        for key, records in self._unparsed.items():
            document[key].extend(records)
        return document


class Verification(CamelModel):
    has_pass: bool
    gate_pass: Optional[GatePassRequest] = Field(None, alias='pass')


class Stats(CamelModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    today: int = 0
    used: int = 0


# -----------------------------
# Request bodies
# -----------------------------
# Fields are optional so that missing values reach the service and come
# back as "Missing required fields" rather than a schema error. Numbers
# are accepted for text fields (e.g. "returnTime": 18).

class BodyModel(CamelModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)


class LoginBody(BodyModel):
    user_id: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class CreatePassBody(BodyModel):
    student_id: Optional[str] = None
    student_name: Optional[str] = None
    reason: Optional[str] = None
    return_time: Optional[str] = None


class ReviewBody(BodyModel):
    status: Optional[str] = None
    moderator_id: Optional[str] = None
    moderator_name: Optional[str] = None
    remarks: Optional[str] = None
