# InnoSistemas Models
from innosistemas.models.base import BaseModel
from innosistemas.models.revoked_token import RevokedToken
from innosistemas.models.user import Role, User

__all__ = [
    "BaseModel",
    "RevokedToken",
    "Role",
    "User",
]
