import os
from sqlmodel import Session, SQLModel, create_engine

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./traceback.db")

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # sessions are handed across FastAPI's threadpool
    connect_args = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, connect_args=connect_args)


def create_db_and_tables():
    # import models so their tables are registered on the metadata
    from app.models import cctv, claim, item, notification, thread  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
