from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

def build_engine(database_url: str, echo: bool = False) -> Engine:
    # Engine = the DB connection factory
    connect_args = {}
    if database_url.startswith("sqlite"):
        # store calls run in the threadpool, not the thread that opened the connection
        connect_args["check_same_thread"] = False
    return create_engine(database_url, echo=echo, future=True, connect_args=connect_args)

def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
