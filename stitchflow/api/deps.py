from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.database import get_db


# Request-scoped session; the whole request is one transaction
DB = Annotated[AsyncSession, Depends(get_db)]
