"""Acting identity passed explicitly through every engine call."""

from dataclasses import dataclass

from app.config import get_settings


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation."""

    id: str
    name: str = ""

    @classmethod
    def system(cls) -> "Actor":
        """The identity the timeout worker acts under."""
        settings = get_settings()
        return cls(id=settings.SYSTEM_ACTOR_ID, name=settings.SYSTEM_ACTOR_NAME)

    @property
    def is_system(self) -> bool:
        return self.id == get_settings().SYSTEM_ACTOR_ID
