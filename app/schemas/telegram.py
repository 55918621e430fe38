from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: str = "private"  # private, group, supergroup, channel
    title: Optional[str] = None
    username: Optional[str] = None


class TelegramPhotoSize(BaseModel):
    file_id: str
    file_unique_id: str
    width: int
    height: int
    file_size: Optional[int] = None


class TelegramDocument(BaseModel):
    file_id: str
    file_unique_id: str
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None


class TelegramMessage(BaseModel):
    message_id: int
    date: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")  # "from" is reserved in Python
    text: Optional[str] = None
    caption: Optional[str] = None
    photo: Optional[list[TelegramPhotoSize]] = None
    document: Optional[TelegramDocument] = None

    model_config = ConfigDict(populate_by_name=True)

    def image_attachment(self) -> Optional[tuple[str, str]]:
        """(file_id, content type) of an attached image, preferring the largest photo size."""
        if self.photo:
            largest = max(self.photo, key=lambda size: (size.width * size.height, size.file_size or 0))
            return largest.file_id, "image/jpeg"
        if self.document and (self.document.mime_type or "").startswith("image/"):
            return self.document.file_id, self.document.mime_type
        return None


class TelegramCallbackQuery(BaseModel):
    id: str
    from_user: TelegramUser = Field(alias="from")
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None  # callback_data from button

    model_config = ConfigDict(populate_by_name=True)


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


class TelegramWebhookResponse(BaseModel):
    success: bool
    message: Optional[str] = None
