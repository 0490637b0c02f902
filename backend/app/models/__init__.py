"""SQLAlchemy models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import all models so Base.metadata.create_all() picks them up
from app.models.user import User  # noqa: E402, F401
from app.models.alert import Alert  # noqa: E402, F401
from app.models.alert_history import AlertHistory  # noqa: E402, F401
from app.models.exchange_credential import ExchangeCredential  # noqa: E402, F401
