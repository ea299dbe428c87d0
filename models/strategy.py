"""Strategy model for grouping imported trades."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Strategy:
    """Represents a user's trading strategy.

    Attributes:
        id: Unique identifier (auto-generated).
        owner_id: User the strategy belongs to.
        name: Strategy name, unique per owner.
        description: Optional free text.
    """

    id: int
    owner_id: str
    name: str
    description: Optional[str] = None
