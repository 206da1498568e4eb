"""
Render-ready chat messages.

Messages are plain dataclasses that serialize to the Slack message
shape: text plus an ordered list of attachments with fields.
"""

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Optional, Dict, Any, List

from roombot.calendar.booking import Booking

TODAY_COLOR = "#3BCBFF"
TOMORROW_COLOR = "#33FF3D"
REMINDER_COLOR = "#3BCBFF"

NO_BOOKINGS_TOPIC = "No bookings today."

# Response visibility for slash-command replies
IN_CHANNEL = "in_channel"
EPHEMERAL = "ephemeral"


@dataclass
class AttachmentField:
    """A title/value pair inside an attachment."""
    value: str
    title: str = ""
    short: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "value": self.value, "short": self.short}


@dataclass
class Attachment:
    """A formatted card."""
    title: str = ""
    fields: List[AttachmentField] = field(default_factory=list)
    color: str = ""
    title_link: str = ""
    mrkdwn_in: List[str] = field(default_factory=lambda: ["fields"])

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "fields": [f.to_dict() for f in self.fields],
            "color": self.color,
            "mrkdwn_in": list(self.mrkdwn_in),
        }
        if self.title_link:
            data["title_link"] = self.title_link
        return data


@dataclass
class Message:
    """A chat reply or broadcast."""
    text: str = ""
    attachments: List[Attachment] = field(default_factory=list)
    response_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "text": self.text,
            "attachments": [a.to_dict() for a in self.attachments],
        }
        if self.response_type:
            data["response_type"] = self.response_type
        return data


def booking_attachment(
    booking: Booking,
    title: str,
    color: str,
    now: datetime,
    tz: tzinfo,
) -> Attachment:
    """Card for one booking: when, and who/what."""
    return Attachment(
        color=color,
        fields=[
            AttachmentField(title=title, value=booking.time_label(now, tz)),
            AttachmentField(title="Who/What", value=booking.title),
        ],
    )


def help_attachment() -> Attachment:
    """Usage card."""
    return Attachment(
        title="Command Syntax:",
        fields=[
            AttachmentField(value="/book list"),
            AttachmentField(value="Show today's and tomorrow's bookings"),
            AttachmentField(value="/book 1pm meeting"),
            AttachmentField(value="Book a meeting for 1pm"),
            AttachmentField(value="/book help"),
            AttachmentField(value="Show this help"),
        ],
    )


def help_message() -> Message:
    return Message(text="Booking command syntax:", attachments=[help_attachment()])


def calendar_link_attachment(url: str) -> Attachment:
    return Attachment(
        title="Full calendar",
        title_link=url,
        fields=[AttachmentField(value=f"<{url}|Open the room calendar>", short=False)],
    )


def reminder_message(booking: Booking, now: datetime, tz: tzinfo) -> Message:
    """Broadcast for a booking that is about to start."""
    return Message(
        text="*Reminder*",
        attachments=[
            Attachment(
                color=REMINDER_COLOR,
                fields=[
                    AttachmentField(title="Time", value=booking.time_label(now, tz)),
                    AttachmentField(title="Person", value=booking.title),
                ],
            )
        ],
    )


def next_topic(booking: Optional[Booking], now: datetime, tz: tzinfo) -> str:
    """Channel topic announcing the next booking."""
    if booking is None:
        return NO_BOOKINGS_TOPIC
    return f"*Next Booking:* {booking.time_label(now, tz)} {booking.title}"
