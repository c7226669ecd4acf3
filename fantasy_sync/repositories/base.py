"""
Base repository class for data access layer.

The repository pattern provides:
1. Separation of data access logic from sync/trigger logic
2. Single place for query logic (easier to maintain)
3. Easier testing (services take a session; repositories can be mocked)
4. Consistent interface for data operations

Example:
    class GameRepository(BaseRepository[Game]):
        def find_by_game_key(self, game_key: str) -> Optional[Game]:
            return self.where_first(Game.game_key == game_key)
"""
from abc import ABC
from typing import TypeVar, Generic, Type, Optional, List, Any, Dict, Iterable, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # CRUD Operations
    # ========================================================================

    def find_by_id(self, id: str) -> Optional[T]:
        """Find a single record by ID."""
        return self.db.query(self.model_type).filter(self.model_type.id == id).first()

    def create(self, **kwargs) -> T:
        """
        Create a new record.

        Returns:
            The created record (not yet committed to database)
        """
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        return instance

    # ========================================================================
    # Query Builders
    # ========================================================================

    def query(self) -> Query:
        """Get a new query object for this model."""
        return self.db.query(self.model_type)

    def where(self, *criterion) -> List[T]:
        """Filter records using SQLAlchemy expressions."""
        return self.db.query(self.model_type).filter(*criterion).all()

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return first match."""
        return self.db.query(self.model_type).filter(*criterion).first()

    def count(self, *criterion) -> int:
        """Count records matching optional criterion."""
        query = self.db.query(func.count(self.model_type.id))
        if criterion:
            query = query.filter(*criterion)
        return query.scalar() or 0

    # ========================================================================
    # Batch Operations
    # ========================================================================

    def upsert_by_key(
        self,
        scope: Iterable,
        key_column: str,
        items: List[Dict[str, Any]],
    ) -> Tuple[int, int]:
        """
        Insert or update a batch of records keyed by a natural key.

        Existing rows are loaded in one query (restricted by `scope`, e.g. the
        game id) and updated in place; missing rows are added. Nothing is
        committed here.

        Args:
            scope: Filter criteria restricting the lookup (e.g. game_id == X)
            key_column: Attribute that, together with scope, is unique
            items: Column values per record; each must contain key_column

        Returns:
            (inserted, updated) counts
        """
        if not items:
            return 0, 0

        column = getattr(self.model_type, key_column)
        keys = [item[key_column] for item in items]
        existing = {
            getattr(row, key_column): row
            for row in self.db.query(self.model_type).filter(*scope, column.in_(keys)).all()
        }

        inserted = updated = 0
        for item in items:
            row = existing.get(item[key_column])
            if row is None:
                row = self.model_type(**item)
                self.db.add(row)
                existing[item[key_column]] = row
                inserted += 1
            else:
                for name, value in item.items():
                    setattr(row, name, value)
                updated += 1

        return inserted, updated

    # ========================================================================
    # Save Operations
    # ========================================================================

    def save(self) -> None:
        """Commit pending changes to the database."""
        self.db.commit()

