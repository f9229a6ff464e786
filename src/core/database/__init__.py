from src.core.database.session import async_session, atomic, engine, get_db
from src.core.database.base import Base, BaseModel, BigIntPK

__all__ = ["async_session", "atomic", "engine", "get_db", "Base", "BaseModel", "BigIntPK"]
