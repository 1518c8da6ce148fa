"""
Input validators for the bridge endpoints

One canonical shape per endpoint. Anything else is rejected with
MalformedBody / MalformedEvent; no attempt is made to repair
near-JSON payloads.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .error_handling import MalformedBody, MalformedEvent, MissingField


ACCOUNT_UPDATED = "account.updated"


@dataclass(frozen=True)
class OnboardingRequest:
    """Validated body of POST /create-connected-account"""

    row_id: str
    email: str
    name: Optional[str] = None
    employer_email: Optional[str] = None
    account_type: str = "express"
    business_type: str = "individual"

    REQUIRED_FIELDS = ("row_id", "email")
    OPTIONAL_FIELDS = ("name", "employer_email", "type", "business_type")

    @classmethod
    def from_payload(
        cls,
        data: Any,
        default_account_type: str = "express",
        default_business_type: str = "individual"
    ) -> "OnboardingRequest":
        """
        Build a request from a decoded JSON body

        Raises:
            MalformedBody: If the body is not a JSON object or a field is not a string
            MissingField: If row_id or email is absent or empty
        """
        if not isinstance(data, dict):
            raise MalformedBody("Request body must be a JSON object")

        for field in cls.REQUIRED_FIELDS + cls.OPTIONAL_FIELDS:
            value = data.get(field)
            if value is not None and not isinstance(value, str):
                raise MalformedBody(f"Field '{field}' must be a string", {'field': field})

        for field in cls.REQUIRED_FIELDS:
            if not (data.get(field) or "").strip():
                raise MissingField(field)

        return cls(
            row_id=data["row_id"],
            email=data["email"],
            name=_optional(data.get("name")),
            employer_email=_optional(data.get("employer_email")),
            account_type=_optional(data.get("type")) or default_account_type,
            business_type=_optional(data.get("business_type")) or default_business_type
        )


@dataclass(frozen=True)
class CompletionEvent:
    """Validated Stripe event envelope"""

    event_type: str
    account: Dict[str, Any]
    event_id: Optional[str] = None

    @property
    def account_id(self) -> Optional[str]:
        return self.account.get("id")

    @classmethod
    def from_payload(cls, data: Any) -> "CompletionEvent":
        """
        Raises:
            MalformedEvent: If the envelope lacks a type, or an
                account.updated event lacks a data.object with a string id

        Other event types are accepted with whatever object they carry,
        or an empty one.
        """
        if not isinstance(data, dict):
            raise MalformedEvent("Event must be a JSON object")

        event_type = data.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise MalformedEvent("Event type is missing")

        envelope = data.get("data")
        obj = envelope.get("object") if isinstance(envelope, dict) else None
        event_id = data.get("id")
        event_id = event_id if isinstance(event_id, str) else None

        if event_type != ACCOUNT_UPDATED:
            return cls(
                event_type=event_type,
                account=obj if isinstance(obj, dict) else {},
                event_id=event_id
            )

        if not isinstance(obj, dict):
            raise MalformedEvent("Event data.object is missing")
        if not isinstance(obj.get("id"), str):
            raise MalformedEvent("Account id is missing")

        return cls(
            event_type=event_type,
            account=obj,
            event_id=event_id
        )


def parse_json_body(raw: bytes) -> Any:
    """
    Decode a raw request body strictly

    Raises:
        MalformedBody: If the body is empty or not valid JSON
    """
    if not raw:
        raise MalformedBody("Request body required")
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise MalformedBody("Request body is not valid JSON")


def validate_row_id(value: Optional[str]) -> str:
    """Require a non-empty row_id query parameter"""
    if not value or not value.strip():
        raise MissingField("row_id")
    return value


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None
