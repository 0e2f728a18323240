from models.base_model import Base, BaseModel
from sqlalchemy import Column, String, Text

ROLES = ("ADMIN", "CLIENT")


class User(BaseModel, Base):
    """A CRM principal. The token subsystem only ever writes current_refresh_token."""

    __tablename__ = "users"
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False, default="CLIENT")
    # encoded string of the one live refresh token, NULL once revoked
    current_refresh_token = Column(Text, nullable=True)

    def __repr__(self):
        return f"<User {self.email} role={self.role}>"
