import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.exc import SQLAlchemyError

from models.base_model import Base
from models.user import User  # noqa: F401  registers the users table

logger = logging.getLogger(__name__)

DEFAULT_URL = "sqlite:///crm-auth.db"


def engine_options(url: str, timeout: float) -> dict:
    """Backend-specific engine kwargs so no store call can hang forever."""
    if url.startswith("sqlite"):
        # busy timeout for locked databases; threads share the file
        return {"connect_args": {"timeout": timeout, "check_same_thread": False}}
    options = {"pool_pre_ping": True, "pool_timeout": timeout}
    if url.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return options


class DBStorage:
    __engine = None
    __session = None

    def reload(self, url: str | None = None, timeout: float = 5.0, echo: bool = False):
        """Build the engine, create tables and start a scoped session"""
        url = url or DEFAULT_URL
        if self.__session is not None:
            self.__session.remove()
        if self.__engine is not None:
            self.__engine.dispose()

        self.__engine = create_engine(url, echo=echo, **engine_options(url, timeout))
        if self.__engine.url.get_backend_name() == "sqlite":
            @event.listens_for(self.__engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        Base.metadata.create_all(self.__engine)
        session_factory = sessionmaker(bind=self.__engine, expire_on_commit=False)
        self.__session = scoped_session(session_factory)
        logger.info("storage ready on %s", self.__engine.url.render_as_string(hide_password=True))

    @property
    def engine(self):
        return self.__engine

    def ping(self) -> bool:
        """True when the database answers a trivial query"""
        try:
            with self.__engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning("storage ping failed", exc_info=True)
            return False

    def close(self):
        """Remove session (for API teardown)"""
        if self.__session is not None:
            self.__session.remove()

    # expose the SQLAlchemy session for advanced querying
    def get_session(self):
        if self.__session is None:
            raise RuntimeError("storage.reload() has not been called")
        return self.__session
