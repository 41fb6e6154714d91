from sqlalchemy import Column, String, Boolean
from .base import BaseModel


class User(BaseModel):
    __tablename__ = "users"

    email = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)

    @property
    def label(self) -> str:
        return self.display_name or self.email
