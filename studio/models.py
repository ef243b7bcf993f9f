from sqlmodel import SQLModel, Field
from datetime import datetime, timezone
from typing import Optional

class Message(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)  # session identifier, "anonymous" when absent
    role: str
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class GeneratedImage(SQLModel, table=True):
    __tablename__ = "generated_images"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    prompt: str
    image_url: str
    size: str
    style: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
