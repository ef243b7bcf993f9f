"""Append-only storage of chat messages and generated images.

Writes raise on failure; callers that must not be affected by storage
problems go through ``fire_and_forget``.
"""
import logging
from typing import Callable, List, Optional

from sqlmodel import Session, select

from studio.models import GeneratedImage, Message

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, engine=None):
        self.engine = engine

    @property
    def enabled(self) -> bool:
        return self.engine is not None

    def save_message(self, user_id: str, role: str, content: str) -> Optional[Message]:
        if not self.enabled:
            logger.debug("Persistence disabled, message not saved.")
            return None
        with Session(self.engine) as session:
            message = Message(user_id=user_id, role=role, content=content)
            session.add(message)
            session.commit()
            session.refresh(message)
            logger.info(f"Message saved: id={message.id}, user_id={user_id}, role={role}")
            return message

    def save_generated_image(
        self, user_id: str, prompt: str, image_url: str, size: str, style: Optional[str] = None
    ) -> Optional[GeneratedImage]:
        if not self.enabled:
            logger.debug("Persistence disabled, generated image not saved.")
            return None
        with Session(self.engine) as session:
            image = GeneratedImage(user_id=user_id, prompt=prompt, image_url=image_url, size=size, style=style)
            session.add(image)
            session.commit()
            session.refresh(image)
            logger.info(f"Generated image saved: id={image.id}, user_id={user_id}")
            return image

    def get_messages(self, user_id: str, limit: int = 50) -> List[Message]:
        """Oldest first."""
        if not self.enabled:
            return []
        with Session(self.engine) as session:
            return session.exec(
                select(Message)
                .where(Message.user_id == user_id)
                .order_by(Message.created_at, Message.id)
                .limit(limit)
            ).all()

    def get_generated_images(self, user_id: str, limit: int = 20) -> List[GeneratedImage]:
        """Newest first."""
        if not self.enabled:
            return []
        with Session(self.engine) as session:
            return session.exec(
                select(GeneratedImage)
                .where(GeneratedImage.user_id == user_id)
                .order_by(GeneratedImage.created_at.desc(), GeneratedImage.id.desc())
                .limit(limit)
            ).all()


def fire_and_forget(fn: Callable, *args, **kwargs) -> None:
    """Run a persistence call, logging and discarding any failure."""
    try:
        fn(*args, **kwargs)
    except Exception as e:
        logger.error(f"Persistence failed in {getattr(fn, '__name__', fn)}: {e}")
