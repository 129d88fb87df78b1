import secrets
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Index, String, Text, func

from app.auth.profiles import Profile, children_of, load_profile, parent_of
from app.db.session import Base


def generate_account_id() -> str:
    """24 hex chars from a CSPRNG. Unique and unpredictable; carries no timestamp."""
    return secrets.token_hex(12)


class Account(Base):
    """
    Any platform user (superadmin, admin, tutor, parent, student).

    Role-specific data lives in ``profile``. Parent -> children membership is an id
    list inside the parent's profile, not a foreign-key table; the consistency
    reconciler keeps it in line with the accounts that actually exist.
    """

    __tablename__ = "accounts"

    id = Column(String(24), primary_key=True, default=generate_account_id)
    # Stored lower-cased; uniqueness is enforced case-insensitively by the indexes below
    email = Column(String(255), nullable=False)
    username = Column(String(150), nullable=False)
    password_hash = Column(Text, nullable=False)
    # superadmin | admin | tutor | parent | student; fixed at creation
    role = Column(String(20), nullable=False, index=True)
    # Owning center; null for superadmin
    center_id = Column(String(24), nullable=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone_number = Column(String(50), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    time_zone = Column(String(64), nullable=False, default="UTC")
    is_active = Column(Boolean, nullable=False, default=True)
    account_status = Column(String(20), nullable=False, default="active")
    profile = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def typed_profile(self) -> Optional[Profile]:
        return load_profile(self.role, self.profile)

    @property
    def children_ids(self) -> List[str]:
        return children_of(self.profile)

    @property
    def parent_id(self) -> Optional[str]:
        return parent_of(self.profile)


Index("uq_accounts_email_lower", func.lower(Account.email), unique=True)
Index("uq_accounts_username_lower", func.lower(Account.username), unique=True)
