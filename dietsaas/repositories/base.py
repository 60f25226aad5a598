"""
Base repository shared by every table-backed repository.
"""
import uuid
from typing import TypeVar, Generic, Type, Optional

from pydantic import BaseModel
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.core.clock import utcnow

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Insert, load and save for one model class.
    Each write commits immediately; multi-row work is done in the subclasses.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def create(self, values: dict) -> ModelType:
        return await self._commit(self.model(**values))

    async def get(self, id: uuid.UUID) -> Optional[ModelType]:
        return await self.session.get(self.model, id)

    async def save(self, db_obj: ModelType) -> ModelType:
        """Persist changes made directly on a loaded object."""
        self._touch(db_obj)
        return await self._commit(db_obj)

    async def apply_changes(self, db_obj: ModelType, changes: BaseModel) -> ModelType:
        """
        Apply a partial update.

        Only fields present in the request body are written; a field sent
        as null clears the column, a field left out is untouched.
        """
        for field, value in changes.model_dump(exclude_unset=True).items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)
        return await self.save(db_obj)

    @staticmethod
    def _touch(db_obj: ModelType) -> None:
        if hasattr(db_obj, "updated_at"):
            db_obj.updated_at = utcnow()

    async def _commit(self, db_obj: ModelType) -> ModelType:
        self.session.add(db_obj)
        await self.session.commit()
        await self.session.refresh(db_obj)
        return db_obj
