"""Request models for the session operation surface."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    chat_id: str


class RemoteFile(BaseModel):
    url: str
    mimetype: str | None = None
    filename: str | None = None


class BinaryFile(BaseModel):
    data: str  # base64
    mimetype: str | None = None
    filename: str | None = None


class MessageTextRequest(ChatRequest):
    text: str
    mentions: list[str] | None = None
    reply_to: str | None = None
    link_preview: bool = True
    link_preview_high_quality: bool = False


class MessageReplyRequest(MessageTextRequest):
    reply_to: str | None = None


class EditMessageRequest(BaseModel):
    text: str
    mentions: list[str] | None = None
    link_preview: bool = True
    link_preview_high_quality: bool = False


class MessageLocationRequest(ChatRequest):
    latitude: float
    longitude: float
    title: str | None = None
    reply_to: str | None = None


class Poll(BaseModel):
    name: str
    options: list[str]
    multiple_answers: bool = False


class MessagePollRequest(ChatRequest):
    poll: Poll
    reply_to: str | None = None


class VCardContact(BaseModel):
    full_name: str
    organization: str | None = None
    phone_number: str | None = None
    whatsapp_id: str | None = None
    vcard: str | None = None

    def to_vcard(self) -> str:
        if self.vcard:
            return self.vcard
        lines = ["BEGIN:VCARD", "VERSION:3.0", f"FN:{self.full_name}"]
        if self.organization:
            lines.append(f"ORG:{self.organization};")
        if self.phone_number:
            waid = self.whatsapp_id or self.phone_number.lstrip("+").replace(" ", "")
            lines.append(f"TEL;type=CELL;type=VOICE;waid={waid}:{self.phone_number}")
        lines.append("END:VCARD")
        return "\n".join(lines)


class MessageContactVcardRequest(ChatRequest):
    contacts: list[VCardContact]
    reply_to: str | None = None


class MessageForwardRequest(ChatRequest):
    message_id: str


class MessageLinkPreviewRequest(ChatRequest):
    url: str
    title: str
    reply_to: str | None = None


class MessageMediaRequest(ChatRequest):
    file: RemoteFile | BinaryFile
    caption: str | None = None
    reply_to: str | None = None


class MessageImageRequest(MessageMediaRequest):
    pass


class MessageFileRequest(MessageMediaRequest):
    pass


class MessageVoiceRequest(MessageMediaRequest):
    pass


class MessageVideoRequest(MessageMediaRequest):
    pass


class SendSeenRequest(ChatRequest):
    message_id: str | None = None
    message_ids: list[str] = Field(default_factory=list)
    participant: str | None = None


class MessageReactionRequest(BaseModel):
    message_id: str
    reaction: str


class MessageStarRequest(ChatRequest):
    message_id: str
    star: bool


class CheckNumberStatusQuery(BaseModel):
    phone: str


class WANumberExistResult(BaseModel):
    number_exists: bool
    chat_id: str | None = None


class ContactQuery(BaseModel):
    contact_id: str


class ContactRequest(BaseModel):
    contact_id: str
