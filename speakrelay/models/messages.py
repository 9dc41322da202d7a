"""Relay signaling messages.

Every message on the wire is a JSON object ``{"type", "payload"?, "senderId"?}``.
The ``type`` tag selects exactly one payload shape; anything that does not
match is a :class:`MessageDecodeError`, never a crash further down.
"""

import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .transcript import TranscriptEntry
from ..errors import MessageDecodeError


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class JoinRequestPayload(_Payload):
    name: str = "Guest"


class GuestDecisionPayload(_Payload):
    guest_id: str = Field(alias="guestId")


class TranscriptUpdatePayload(_Payload):
    entry: TranscriptEntry


class _Message(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sender_id: Optional[str] = Field(default=None, alias="senderId")


class JoinRequest(_Message):
    type: Literal["JOIN_REQUEST"] = "JOIN_REQUEST"
    sender_id: str = Field(alias="senderId")
    payload: JoinRequestPayload = Field(default_factory=JoinRequestPayload)


class JoinApproved(_Message):
    type: Literal["JOIN_APPROVED"] = "JOIN_APPROVED"
    payload: GuestDecisionPayload


class JoinRejected(_Message):
    type: Literal["JOIN_REJECTED"] = "JOIN_REJECTED"
    payload: GuestDecisionPayload


class TranscriptUpdate(_Message):
    type: Literal["TRANSCRIPT_UPDATE"] = "TRANSCRIPT_UPDATE"
    payload: TranscriptUpdatePayload


class TranscriptClear(_Message):
    type: Literal["TRANSCRIPT_CLEAR"] = "TRANSCRIPT_CLEAR"
    payload: None = None


class SessionEnded(_Message):
    type: Literal["SESSION_ENDED"] = "SESSION_ENDED"
    payload: None = None


SignalingMessage = Annotated[
    Union[JoinRequest, JoinApproved, JoinRejected, TranscriptUpdate, TranscriptClear, SessionEnded],
    Field(discriminator="type"),
]

_adapter = TypeAdapter(SignalingMessage)


def join_request(guest_id: str, name: str = "Guest") -> JoinRequest:
    return JoinRequest(sender_id=guest_id, payload=JoinRequestPayload(name=name))


def join_approved(guest_id: str) -> JoinApproved:
    return JoinApproved(payload=GuestDecisionPayload(guest_id=guest_id))


def join_rejected(guest_id: str) -> JoinRejected:
    return JoinRejected(payload=GuestDecisionPayload(guest_id=guest_id))


def transcript_update(entry: TranscriptEntry) -> TranscriptUpdate:
    return TranscriptUpdate(payload=TranscriptUpdatePayload(entry=entry))


def decode_message(raw: Union[str, bytes, Dict[str, Any]]) -> SignalingMessage:
    """Decode a wire message into its typed variant.

    Raises:
        MessageDecodeError: on invalid JSON, unknown type or wrong payload shape
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise MessageDecodeError(f"Invalid JSON in relay message: {e}") from e
    if not isinstance(raw, dict):
        raise MessageDecodeError(f"Relay message must be an object, got {type(raw).__name__}")
    try:
        return _adapter.validate_python(raw)
    except ValidationError as e:
        raise MessageDecodeError(f"Malformed {raw.get('type', '<untyped>')} message: {e}") from e


def encode_message(message: SignalingMessage) -> Dict[str, Any]:
    return message.model_dump(by_alias=True, exclude_none=True, mode="json")


def message_to_json(message: SignalingMessage) -> str:
    return json.dumps(encode_message(message))
