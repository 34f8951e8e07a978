from tokenauth.uow.base import UnitOfWork
from tokenauth.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork

__all__ = ["SQLAlchemyUnitOfWork", "UnitOfWork"]
