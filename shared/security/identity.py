from typing import Optional

from pydantic import BaseModel

ADMIN_ROLE = "admin"


class CurrentUser(BaseModel):
    """Identity handed to us by the auth collaborator. Trusted as-is."""

    id: str
    role: str = "customer"
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @classmethod
    def from_claims(cls, payload: dict) -> "CurrentUser":
        return cls(
            id=str(payload["sub"]),
            role=payload.get("role") or "customer",
            email=payload.get("email"),
            name=payload.get("name"),
        )
