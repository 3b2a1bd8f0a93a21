"""SQLModel database engine, session management and bootstrap data."""
from loguru import logger
from passlib.hash import pbkdf2_sha256
from sqlmodel import SQLModel, Session, create_engine, select

from pharmadist.core.config import settings

# Import models so SQLModel.metadata knows about all tables
import pharmadist.models  # noqa: F401
from pharmadist.models.party import Account, User

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False}
    if settings.DATABASE_URL.startswith("sqlite")
    else {},
    echo=False,
)

# code → (name, account_type)
DEFAULT_ACCOUNTS = {
    settings.CASH_ACCOUNT_CODE: ("Cash in Hand", "asset"),
    settings.SALES_ACCOUNT_CODE: ("Sales", "income"),
    settings.PURCHASE_ACCOUNT_CODE: ("Purchases", "expense"),
    settings.ADJUSTMENT_ACCOUNT_CODE: ("Trade Offer Adjustment", "expense"),
}


def seed_defaults(session: Session) -> None:
    """Insert the system GL accounts and the bootstrap admin user if missing."""
    for code, (name, account_type) in DEFAULT_ACCOUNTS.items():
        existing = session.exec(select(Account).where(Account.code == code)).first()
        if not existing:
            session.add(Account(code=code, name=name, account_type=account_type))
            logger.info(f"Seeded account {code} {name}")

    admin = session.exec(
        select(User).where(User.username == settings.AUTH_USERNAME)
    ).first()
    if not admin:
        session.add(
            User(
                username=settings.AUTH_USERNAME,
                full_name="Administrator",
                password_hash=pbkdf2_sha256.hash(settings.AUTH_PASSWORD),
                role="admin",
            )
        )
        logger.info(f"Seeded admin user '{settings.AUTH_USERNAME}'")
    session.commit()


def create_db_and_tables() -> None:
    """Create all tables defined in SQLModel models and seed defaults."""
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        seed_defaults(session)


def get_session():
    """FastAPI dependency: yields a SQLModel session."""
    with Session(engine) as session:
        yield session
