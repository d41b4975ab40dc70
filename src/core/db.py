from sqlmodel import Session, SQLModel, create_engine

from core.config import settings

# make sure all SQLModel models are imported (models) before initializing DB
# otherwise, SQLModel might fail to initialize relationships properly
# for more details: https://github.com/tiangolo/full-stack-fastapi-postgresql/issues/28
import models  # noqa: F401

connect_args = {"check_same_thread": False} if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}
engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI), connect_args=connect_args)


def init_db(session: Session | None = None) -> None:
    bind = session.get_bind() if session is not None else engine
    SQLModel.metadata.create_all(bind)
