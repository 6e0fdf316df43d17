"""
Stream Event Models
===================

Pydantic models for the structured events carried by streaming frames,
plus the decoder that maps one decoded JSON frame to one event.

Frame Shapes (newline-delimited JSON from the streaming endpoint):
    Status:            {"id": 1, "text": "...", "user": {...}, ...}
    Deletion notice:   {"delete": {"status": {"id": 1, "user_id": 2}}}
    Limit notice:      {"limit": {"track": 1234}}
    Scrub geo:         {"scrub_geo": {"user_id": 2, "up_to_status_id": 1}}
    Stall warning:     {"warning": {"code": "FALLING_BEHIND", "message": "...",
                                    "percent_full": 60}}

Anything else (withheld notices, friends lists, control messages) is
unrecognized: raw listeners still see it, structured listeners do not.

Example:
    from chirpstream.models.events import decode_event

    event = decode_event({"limit": {"track": 42}})
    print(event.number_of_limited_statuses)
"""

import logging
from typing import Optional, Union

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


class User(BaseModel):
    """Author of a status (only the fields listeners commonly need)."""

    id: int = Field(..., description="Numeric user ID")
    screen_name: str = Field(..., description="Handle without the @")
    name: Optional[str] = Field(default=None, description="Display name")
    lang: Optional[str] = Field(default=None)
    followers_count: int = Field(default=0, ge=0)


class Status(BaseModel):
    """
    A single status update delivered on the stream.

    Attributes:
        id: Status ID
        text: Status text (full_text for extended statuses)
        created_at: Creation time as sent by the API
        user: Author
        lang: Detected language
        in_reply_to_status_id: Parent status for replies
        retweeted_status: Original status when this is a retweet
    """

    id: int = Field(..., description="Status ID")
    text: str = Field(default="", description="Status text")
    created_at: Optional[str] = Field(default=None, description="API timestamp string")
    user: Optional[User] = Field(default=None, description="Author")
    lang: Optional[str] = Field(default=None, description="Detected language")
    in_reply_to_status_id: Optional[int] = Field(default=None)
    retweeted_status: Optional["Status"] = Field(default=None)
    truncated: bool = Field(default=False)

    class Config:
        """Pydantic model configuration."""

        json_schema_extra = {
            "example": {
                "id": 1234567890,
                "text": "hello stream",
                "created_at": "Wed Oct 10 20:19:24 +0000 2018",
                "user": {"id": 42, "screen_name": "someone"},
                "lang": "en",
            }
        }

    @property
    def is_retweet(self) -> bool:
        return self.retweeted_status is not None


class StatusDeletionNotice(BaseModel):
    """A status was deleted; clients holding it should drop it."""

    status_id: int = Field(..., description="Deleted status ID")
    user_id: int = Field(..., description="Author of the deleted status")


class TrackLimitationNotice(BaseModel):
    """The filter matched more statuses than the stream is allowed to deliver."""

    number_of_limited_statuses: int = Field(
        ...,
        ge=0,
        description="Undelivered matches since the connection was opened",
    )


class ScrubGeo(BaseModel):
    """Location data must be removed from a range of a user's statuses."""

    user_id: int = Field(...)
    up_to_status_id: int = Field(...)


class StallWarning(BaseModel):
    """
    The client is reading too slowly and risks being disconnected.

    Only sent when stall warnings are requested.
    """

    code: str = Field(..., description="Warning code (e.g. FALLING_BEHIND)")
    message: str = Field(default="", description="Human readable explanation")
    percent_full: int = Field(
        default=0,
        ge=0,
        le=100,
        description="How full the server side queue is",
    )


Status.model_rebuild()


StreamEvent = Union[
    Status,
    StatusDeletionNotice,
    TrackLimitationNotice,
    ScrubGeo,
    StallWarning,
]


def decode_event(payload: dict) -> Optional[StreamEvent]:
    """
    Map one decoded frame to a typed event.

    Args:
        payload: JSON object decoded from a single frame

    Returns:
        The structured event, or None when the frame is unrecognized

    Raises:
        pydantic.ValidationError: the frame has a known shape but bad fields
    """
    if "delete" in payload:
        status = payload["delete"].get("status", {})
        return StatusDeletionNotice(
            status_id=status.get("id"),
            user_id=status.get("user_id"),
        )
    if "limit" in payload:
        return TrackLimitationNotice(
            number_of_limited_statuses=payload["limit"].get("track", 0),
        )
    if "scrub_geo" in payload:
        return ScrubGeo.model_validate(payload["scrub_geo"])
    if "warning" in payload:
        return StallWarning.model_validate(payload["warning"])
    if "id" in payload and ("text" in payload or "full_text" in payload):
        data = dict(payload)
        if "full_text" in data:
            data["text"] = data.pop("full_text")
        return Status.model_validate(data)

    logger.debug(f"Unrecognized frame keys: {sorted(payload)[:5]}")
    return None
