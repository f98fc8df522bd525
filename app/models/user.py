from enum import Enum

from sqlalchemy import Boolean, Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.db.base import Base


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    # Sempre gravado em minúsculas e sem espaços (ver normalize_email)
    email = Column(String(255), unique=True, index=True, nullable=False)
    # NULL = usuário importado que ainda não concluiu o registro
    password = Column(String(150), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    # Único valor TRUE permitido: garante um só registro mesmo com requisições concorrentes
    registration_claim = Column(Boolean, unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    password_resets = relationship("PasswordReset", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def is_registered(self) -> bool:
        return self.password is not None

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
