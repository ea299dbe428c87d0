"""Strategy service for database operations."""

from typing import List, Optional

from logger import get_logger
from models.strategy import Strategy

logger = get_logger(__name__)


class StrategyService:
    """Service for managing strategies."""

    def __init__(self, db_manager):
        """Initialize the strategy service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def find_by_owner(self, owner_id: str) -> List[Strategy]:
        """Get all strategies of an owner.

        Returns:
            List of Strategy objects, ordered by name.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                """
                SELECT id, owner_id, name, description FROM strategies
                WHERE owner_id = ? ORDER BY name
                """,
                (owner_id,),
            )
            return [self._row_to_strategy(row) for row in cursor.fetchall()]

    def find_by_name(self, owner_id: str, name: str) -> Optional[Strategy]:
        """Get an owner's strategy by name, ignoring case.

        Args:
            owner_id: Owner to look in.
            name: The strategy name to find.

        Returns:
            Strategy object if found, None otherwise.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                """
                SELECT id, owner_id, name, description FROM strategies
                WHERE owner_id = ? AND lower(name) = lower(?)
                """,
                (owner_id, name.strip()),
            )
            row = cursor.fetchone()

            if row:
                return self._row_to_strategy(row)
            return None

    def create(
        self, owner_id: str, name: str, description: Optional[str] = None
    ) -> Strategy:
        """Create a new strategy.

        Args:
            owner_id: Owner of the strategy.
            name: Strategy name (unique per owner).
            description: Optional description.

        Returns:
            The created Strategy object with id populated.

        Raises:
            sqlite3.IntegrityError: If the owner already has a strategy with
                this name.
        """
        name = name.strip()
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                "INSERT INTO strategies (owner_id, name, description) VALUES (?, ?, ?)",
                (owner_id, name, description),
            )
            conn.commit()
            strategy_id = cursor.lastrowid

        logger.info(f"Created strategy '{name}' for {owner_id}")
        return Strategy(
            id=strategy_id, owner_id=owner_id, name=name, description=description
        )

    def find_or_create(self, owner_id: str, name: str) -> Strategy:
        strategy = self.find_by_name(owner_id, name)
        if strategy is None:
            strategy = self.create(
                owner_id, name, description="Created during trade import"
            )
        return strategy

    def _row_to_strategy(self, row: tuple) -> Strategy:
        return Strategy(id=row[0], owner_id=row[1], name=row[2], description=row[3])
