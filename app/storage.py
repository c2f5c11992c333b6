import logging
from typing import Generator, List, Tuple

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.config import settings

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {engine.url.render_as_string(hide_password=True)}")
    try:
        # Import models to register them with Base.metadata
        from app.models import ChatMessage  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            if not inspect(conn).has_table("chat_messages"):
                logger.error("Database schema not applied: 'chat_messages' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Chat Message Repository Functions
# =============================================================================

def insert_message(
    db: Session,
    phone_number: str,
    wamid: str,
    direction: str,
    content: str,
    status: str,
) -> Tuple[bool, bool]:
    """
    Insert a chat message, ignoring it if the wamid is already stored.

    Uniqueness is enforced by the database, so concurrent deliveries of the
    same wamid end up as one row.

    Returns:
        Tuple of (success: bool, is_duplicate: bool)
        - (True, False): Message created successfully
        - (True, True): Message already exists (duplicate, idempotent success)
        - (False, False): Error occurred
    """
    from app.models import ChatMessage

    logger.info(f"Storing {direction} message: wamid={wamid}, phone_number={phone_number}")

    try:
        db.add(ChatMessage(
            phone_number=phone_number,
            wamid=wamid,
            direction=direction,
            content=content,
            status=status,
        ))
        db.commit()
        logger.info(f"Message stored: {wamid}")
        return (True, False)

    except IntegrityError:
        db.rollback()
        logger.info(f"Duplicate message ignored: {wamid}")
        return (True, True)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to store message {wamid}: {e}")
        return (False, False)


def update_message_status(db: Session, wamid: str, status: str) -> int:
    """
    Set the status of the row with the given wamid.

    Returns:
        Number of rows updated (0 when the wamid is unknown)
    """
    from app.models import ChatMessage

    try:
        updated = (
            db.query(ChatMessage)
            .filter(ChatMessage.wamid == wamid)
            .update({ChatMessage.status: status}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    if updated:
        logger.info(f"Status of {wamid} set to {status!r}")
    else:
        logger.debug(f"No stored message for {wamid}, status {status!r} not applied")
    return updated


def get_history(db: Session, phone_number: str) -> List:
    """
    Retrieve every message exchanged with a phone number.

    Ordering: timestamp ASC, id ASC (deterministic for equal timestamps)
    """
    from app.models import ChatMessage

    logger.info(f"Loading history for {phone_number}")
    messages = (
        db.query(ChatMessage)
        .filter(ChatMessage.phone_number == phone_number)
        .order_by(ChatMessage.timestamp.asc(), ChatMessage.id.asc())
        .all()
    )
    logger.debug(f"Loaded {len(messages)} messages for {phone_number}")
    return messages
