from pydantic import BaseModel, field_validator

MAX_MESSAGE_LENGTH = 1000


class ChatMessageRequest(BaseModel):
    message: str

    @field_validator("message")
    @classmethod
    def check_message(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message is required")
        if len(value) > MAX_MESSAGE_LENGTH:
            raise ValueError("Message must be between 1 and 1000 characters")
        return value
