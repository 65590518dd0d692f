# Filename: neodrive/schemas.py
from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StringConstraints, constr, model_validator
from pydantic.alias_generators import to_camel

from .models import FileCategory, FileType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


Password = constr(min_length=8, max_length=32)


def validate_path(value: str) -> str:
    """A parent location: "/" or "/a/b/" with no empty or dot segments."""
    if not value.startswith("/") or not value.endswith("/"):
        raise ValueError("path must start and end with '/'")
    segments = value.strip("/").split("/") if value != "/" else []
    if any(s in ("", ".", "..") for s in segments):
        raise ValueError("path contains an invalid segment")
    return value


def validate_name(value: str) -> str:
    if "/" in value or value in (".", ".."):
        raise ValueError("name must not contain '/'")
    return value


FileName = Annotated[str, StringConstraints(min_length=1, max_length=255, strip_whitespace=True), AfterValidator(validate_name)]
FolderPath = Annotated[str, StringConstraints(min_length=1, max_length=255), AfterValidator(validate_path)]
UserId = constr(min_length=1, max_length=255)


# --- auth / user ---

class LoginRequest(CamelModel):
    email: EmailStr
    password: Password


class SignupRequest(CamelModel):
    name: constr(min_length=2, max_length=32, strip_whitespace=True)
    email: EmailStr
    password: Password
    confirm_password: Password

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class IdentityOut(CamelModel):
    id: str
    name: str
    email: str
    subscription: str


class NameChangeRequest(CamelModel):
    user_id: UserId
    name: constr(min_length=2, max_length=32, strip_whitespace=True)


class NameOut(CamelModel):
    name: str


class PasswordChangeRequest(CamelModel):
    user_id: UserId
    current_password: Password
    new_password: Password
    confirm_new_password: Password

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_new_password:
            raise ValueError("Passwords don't match")
        return self


class MessageOut(BaseModel):
    message: str


# --- files ---

class PresignedUrlRequest(CamelModel):
    user_id: UserId
    name: FileName
    size: int = Field(ge=1)
    mime_type: constr(min_length=1, max_length=255)
    path: FolderPath


class PresignedUrlOut(CamelModel):
    presigned_url: str
    unique_key: str
    expires_in: int


class FileMetadataRequest(CamelModel):
    user_id: UserId
    name: FileName
    type: FileType
    storage_key: Optional[constr(min_length=1, max_length=1024)] = None
    size: int = Field(default=0, ge=0)
    mime_type: Optional[constr(max_length=255)] = None
    path: FolderPath
    is_favorited: bool = False

    @model_validator(mode="after")
    def storage_key_matches_type(self):
        if self.type == FileType.file and not self.storage_key:
            raise ValueError("storageKey is required for files")
        if self.type == FileType.folder and (self.storage_key is not None or self.size != 0):
            raise ValueError("folders carry no storageKey and a size of 0")
        return self


class RenameRequest(CamelModel):
    id: constr(min_length=1, max_length=255)
    name: FileName


class FileIdRequest(CamelModel):
    id: constr(min_length=1, max_length=255)


class FileOut(CamelModel):
    id: str
    user_id: str
    name: str
    type: FileType
    storage_key: Optional[str]
    size: int
    mime_type: Optional[str]
    path: str
    is_favorited: bool
    category: Optional[FileCategory]
    url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class FileListOut(CamelModel):
    files: List[FileOut]


class UsageOut(CamelModel):
    used_storage: int
    storage_limit: int
    remaining_storage: int
    usage_percentage: int
    subscription: str


# --- billing ---

class CheckoutRequest(CamelModel):
    user_id: UserId
    product: constr(min_length=1, max_length=100, strip_whitespace=True)


class CheckoutOut(CamelModel):
    url: str
