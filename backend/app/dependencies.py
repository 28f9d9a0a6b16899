from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.services.storage import SqlStorage, StorageGateway


def get_storage(session: AsyncSession = Depends(get_async_session)) -> StorageGateway:
    return SqlStorage(session)


StorageDep = Annotated[StorageGateway, Depends(get_storage)]
