from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine

class Base(DeclarativeBase): pass

def make_engine(dsn: str, **kwargs):
    return create_engine(dsn, pool_pre_ping=True, **kwargs)

def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
