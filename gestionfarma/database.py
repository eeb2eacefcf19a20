"""Database configuration and initialization."""
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Create SQLAlchemy base
Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')

# Global session and engine
engine = None
db_session = None


def _engine_options(database_uri: str, echo: bool) -> dict:
    """Pool settings per backend (SQLite in-memory needs a single shared connection)."""
    if database_uri.startswith('sqlite'):
        options = {'echo': echo, 'connect_args': {'check_same_thread': False}}
        if ':memory:' in database_uri or database_uri == 'sqlite://':
            options['poolclass'] = StaticPool
        return options
    
    return {
        'echo': echo,
        'pool_pre_ping': True,  # Enable connection health checks
        'pool_size': 10,
        'max_overflow': 20,
    }


def init_db(app):
    """Initialize database connection."""
    global engine, db_session
    
    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(
        database_uri,
        **_engine_options(database_uri, app.config.get('SQLALCHEMY_ECHO', False))
    )
    
    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )
    
    Base.query = db_session.query_property()
    
    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create every table registered on Base (tests and `flask init-db`)."""
    from gestionfarma import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def drop_all():
    """Drop every table registered on Base."""
    from gestionfarma import models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def get_engine():
    """Get database engine."""
    return engine


def get_session():
    """Get database session."""
    return db_session


@contextmanager
def transaction(session):
    """
    Run a multi-step mutation as one unit of work.
    
    Commits on success. On failure rolls back and re-raises application
    errors unchanged; anything else is logged and surfaced as
    PersistenceError.
    """
    from gestionfarma.exceptions import PosError, PersistenceError
    
    try:
        yield session
        session.commit()
    except PosError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.error(f"Transaction rolled back: {e}", exc_info=True)
        raise PersistenceError() from e
