"""
User Model
Represents system users, their role in the approval hierarchy and
the legal entities they are assigned to
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, Table
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from src.config.database import Base


class UserRole(str, enum.Enum):
    """User roles"""
    EMPLOYEE = "EMPLOYEE"
    FINANCE_TEAM = "FINANCE_TEAM"
    FINANCE_CONTROLLER = "FINANCE_CONTROLLER"
    DIRECTOR = "DIRECTOR"
    MD = "MD"
    ADMIN = "ADMIN"


user_entities = Table(
    "user_entities",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("entity_id", Integer, ForeignKey("entities.id", ondelete="CASCADE"), primary_key=True),
)


class Entity(Base):
    """Legal entity a request is raised against and paid from"""
    __tablename__ = "entities"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    users = relationship("User", secondary=user_entities, back_populates="entities")

    def __repr__(self):
        return f"<Entity {self.code}>"


class User(Base):
    """User model"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)
    employee_id = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)

    # Role
    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)

    # Department and Contact
    department = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    # Relationships
    entities = relationship("Entity", secondary=user_entities, back_populates="users")
    notifications = relationship("Notification", back_populates="user")

    def __repr__(self):
        return f"<User {self.username} ({self.role.value})>"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def has_permission(self, permission: str) -> bool:
        """Check if user has specific permission"""
        from src.config.permissions import has_permission
        return self.is_active and has_permission(self.role, permission)
