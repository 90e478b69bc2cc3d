from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from adserver.config import DATABASE_URL

# SQLite needs check_same_thread disabled because request handlers and the
# track endpoint run sessions from worker threads.
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

class Base(DeclarativeBase):
	pass
