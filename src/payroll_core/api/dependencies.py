"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.database import async_session_factory
from payroll_core.services import PayrollRunService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_payroll_service(db: Annotated[AsyncSession, Depends(get_db_session)]) -> PayrollRunService:
    return PayrollRunService(db)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
PayrollService = Annotated[PayrollRunService, Depends(get_payroll_service)]
