import enum
import logging
from threading import Lock

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.core import config
from backend.core.errors import DatabaseUnavailableError

logger = logging.getLogger(__name__)

Base = declarative_base()


class ConnectionState(str, enum.Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    READY = 'ready'
    FAILED = 'failed'


def _engine_options(url: str, connect_timeout: int) -> dict:
    parsed = make_url(url)
    if parsed.get_backend_name() == 'sqlite':
        options: dict = {'connect_args': {'check_same_thread': False}}
        if parsed.database in (None, '', ':memory:'):
            options['poolclass'] = StaticPool
        return options

    options = {'pool_pre_ping': True}
    if parsed.get_backend_name() == 'postgresql':
        options['connect_args'] = {'connect_timeout': connect_timeout}
    return options


class Database:
    """Owns the engine and session factory for one entity store.

    State moves DISCONNECTED -> CONNECTING -> READY, or to FAILED when the
    store cannot be reached. Sessions are only handed out while READY.
    """

    def __init__(self, url: str, *, connect_timeout: int = 5, echo: bool = False, create_schema: bool = True):
        self.url = url
        self.connect_timeout = connect_timeout
        self.echo = echo
        self.create_schema = create_schema
        self.state = ConnectionState.DISCONNECTED
        self.last_error: str | None = None
        self.engine: Engine | None = None
        self._session_factory: sessionmaker | None = None
        self._lock = Lock()

    @property
    def is_ready(self) -> bool:
        return self.state is ConnectionState.READY

    def connect(self) -> None:
        with self._lock:
            if self.state is ConnectionState.READY:
                return

            self.state = ConnectionState.CONNECTING
            try:
                if self.engine is None:
                    self.engine = create_engine(
                        self.url,
                        echo=self.echo,
                        **_engine_options(self.url, self.connect_timeout),
                    )
                with self.engine.connect() as connection:
                    connection.execute(text('SELECT 1'))
                if self.create_schema:
                    Base.metadata.create_all(bind=self.engine)
            except SQLAlchemyError as exc:
                self.state = ConnectionState.FAILED
                self.last_error = str(exc)
                raise

            self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
            self.state = ConnectionState.READY
            self.last_error = None
            logger.info('Database ready (%s)', make_url(self.url).get_backend_name())

    def disconnect(self) -> None:
        with self._lock:
            if self.engine is not None:
                self.engine.dispose()
            self.engine = None
            self._session_factory = None
            self.state = ConnectionState.DISCONNECTED

    def session(self) -> Session:
        if self._session_factory is None or not self.is_ready:
            raise DatabaseUnavailableError(self.last_error or f'Database is {self.state.value}')
        return self._session_factory()

    def health_check(self) -> dict:
        if self.is_ready and self.engine is not None:
            try:
                with self.engine.connect() as connection:
                    connection.execute(text('SELECT 1'))
            except SQLAlchemyError as exc:
                logger.exception('Database health check failed.')
                self.state = ConnectionState.FAILED
                self.last_error = str(exc)

        return {'state': self.state.value, 'error': self.last_error}


def create_database() -> Database:
    return Database(
        config.DATABASE_URL,
        connect_timeout=config.DB_CONNECT_TIMEOUT_SECONDS,
        echo=config.DB_ECHO,
    )


def ensure_database_ready(database: Database) -> None:
    if database.is_ready:
        return
    try:
        database.connect()
    except SQLAlchemyError as exc:
        logger.warning('Reconnect attempt failed: %s', exc)
        raise DatabaseUnavailableError(str(exc)) from exc


def get_db(request: Request):
    database: Database = request.app.state.database
    ensure_database_ready(database)

    db = database.session()
    try:
        yield db
    finally:
        db.close()
