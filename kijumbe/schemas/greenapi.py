from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field

INCOMING_MESSAGE = "incomingMessageReceived"
PERSONAL_CHAT_SUFFIX = "@c.us"
UNPARSEABLE = "unparseable"


class SenderData(BaseModel):
    chatId: str
    sender: Optional[str] = None
    senderName: Optional[str] = None


class TextMessageData(BaseModel):
    textMessage: str = ""


class ExtendedTextMessageData(BaseModel):
    text: str = ""


class MessageData(BaseModel):
    typeMessage: str = "textMessage"
    textMessageData: Optional[TextMessageData] = None
    extendedTextMessageData: Optional[ExtendedTextMessageData] = None
    buttonsResponseMessage: Optional[dict[str, Any]] = None
    listResponseMessage: Optional[dict[str, Any]] = None

    def text(self) -> str:
        """Best-effort text of the message; empty for media and other types."""
        if self.textMessageData is not None:
            return self.textMessageData.textMessage
        if self.extendedTextMessageData is not None:
            return self.extendedTextMessageData.text
        if self.buttonsResponseMessage:
            return str(
                self.buttonsResponseMessage.get("selectedButtonId")
                or self.buttonsResponseMessage.get("selectedButtonText")
                or ""
            )
        if self.listResponseMessage:
            reply = self.listResponseMessage.get("singleSelectReply")
            if isinstance(reply, dict):
                reply = reply.get("selectedRowId")
            return str(reply or self.listResponseMessage.get("title") or "")
        return ""


class NotificationBody(BaseModel):
    typeWebhook: str
    idMessage: Optional[str] = None
    timestamp: Optional[int] = None
    senderData: Optional[SenderData] = None
    messageData: Optional[MessageData] = None

    @property
    def is_personal_message(self) -> bool:
        return (
            self.typeWebhook == INCOMING_MESSAGE
            and self.senderData is not None
            and self.senderData.chatId.endswith(PERSONAL_CHAT_SUFFIX)
        )

    @property
    def phone(self) -> Optional[str]:
        if self.senderData is None:
            return None
        return self.senderData.chatId.replace(PERSONAL_CHAT_SUFFIX, "")


class Notification(BaseModel):
    receipt_id: int = Field(validation_alias=AliasChoices("receiptId", "receipt_id"))
    body: NotificationBody


class InstanceState(BaseModel):
    stateInstance: str = "unknown"
