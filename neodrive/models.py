# Filename: neodrive/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
import uuid

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class FileType(str, Enum):
    file = "file"
    folder = "folder"


class FileCategory(str, Enum):
    images = "images"
    videos = "videos"
    audios = "audios"
    documents = "documents"
    others = "others"


class User(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    hashed_password: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # billing
    subscription: str = Field(default="free", nullable=False)
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
    stripe_subscription_id: Optional[str] = None
    subscription_end_date: Optional[datetime] = None

    files: List["FileRecord"] = Relationship(back_populates="owner")


class FileRecord(SQLModel, table=True):
    __tablename__ = "files"
    __table_args__ = (
        UniqueConstraint("user_id", "name", "path", name="uq_files_owner_name_path"),
        # one record per stored object; folders keep NULL
        UniqueConstraint("storage_key", name="uq_files_storage_key"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    name: str
    type: FileType
    storage_key: Optional[str] = None  # null for folders and not-yet-written files
    size: int = 0
    mime_type: Optional[str] = None
    path: str = Field(index=True)  # parent location, e.g. "/" or "/docs/"
    is_favorited: bool = False
    category: Optional[FileCategory] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    owner: Optional[User] = Relationship(back_populates="files")

    @property
    def child_path(self) -> str:
        """Path under which this folder's direct children are recorded."""
        return f"{self.path}{self.name}/"


class SubscriptionPlan(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)  # tier name, e.g. "pro"
    price: float
    stripe_price_id: str
    created_at: datetime = Field(default_factory=utcnow)


class PaymentHistory(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    plan_id: int = Field(foreign_key="subscriptionplan.id")
    stripe_session_id: Optional[str] = Field(default=None, index=True)
    stripe_subscription_id: Optional[str] = None
    amount: float
    status: str = "pending"
    payment_date: datetime = Field(default_factory=utcnow)
