"""User model."""

from sqlmodel import Field, SQLModel

from accessgate.models.base import TimestampMixin, generate_nanoid


class User(TimestampMixin, SQLModel, table=True):
    """User account model.

    Identity is owned elsewhere; this subsystem only reads the admin flag
    and the user's basic-mode preference.
    """

    __tablename__ = "users"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    email: str = Field(unique=True, index=True, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    is_admin: bool = Field(default=False)
    basic_mode: bool = Field(default=False, description="User opted into basic-only content")


class UserRead(SQLModel):
    """Schema for reading a user."""

    id: str
    email: str
    name: str | None
    is_admin: bool
    basic_mode: bool
