from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import DATABASE_URL, SQL_STATEMENT_TIMEOUT_SECONDS

# SQLite needs check_same_thread off for the threadpool FastAPI runs sync routes on;
# "timeout" bounds how long a statement waits on a locked database.
connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False, "timeout": SQL_STATEMENT_TIMEOUT_SECONDS}

engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
