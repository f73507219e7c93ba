# sessiongate/models/session_record.py

from datetime import datetime, timezone
from typing import Annotated, Dict, List, Optional, Union

from pydantic import (
    AllowInfNan,
    BaseModel,
    ConfigDict,
    Field,
    Strict,
    StrictBool,
    StrictInt,
    StrictStr,
    field_validator
)

# JSON has no inf/nan; they would come back as null
FiniteStrictFloat = Annotated[float, Strict(), AllowInfNan(False)]

# Scalar values that may live in session metadata
MetadataValue = Union[StrictStr, StrictBool, StrictInt, FiniteStrictFloat, None]


class SessionIdentity(BaseModel):
    """
    Verified attributes established by the identity exchange.

    Frozen: application code can read it but never change it.
    """
    model_config = ConfigDict(frozen=True)

    uid: str
    name: Optional[str] = None
    email: Optional[str] = None
    affiliations: List[str] = Field(default_factory=list)


class SessionRecord(BaseModel):
    """
    The unit of authenticated state carried by the client in a sealed cookie.

    A record without identity counts as "no session" for authorization,
    whatever its metadata holds.
    """
    identity: Optional[SessionIdentity] = None
    metadata: Dict[str, MetadataValue] = Field(default_factory=dict)
    expiry: Optional[datetime] = None

    @field_validator("expiry")
    @classmethod
    def _expiry_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive expiries are taken as UTC so they compare with aware clocks"""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now >= self.expiry

    def merged(self, patch: "SessionPatch") -> "SessionRecord":
        """Return a copy with patch.metadata merged in; identity and expiry are kept"""
        metadata = dict(self.metadata)
        metadata.update(patch.metadata)
        return self.model_copy(update={"metadata": metadata})


class SessionPatch(BaseModel):
    """Metadata changes applied by update_session (merge, never replace)"""
    metadata: Dict[str, MetadataValue] = Field(default_factory=dict)
