from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class Principal:
    subject: str
    email: str | None = None
    role: str = "authenticated"

    @property
    def actor_id(self) -> str:
        return self.subject

    def jwt_claims(self) -> dict[str, Any]:
        claims: dict[str, Any] = {"sub": self.subject, "role": self.role}
        if self.email:
            claims["email"] = self.email
        return claims


def anonymous_claims() -> dict[str, Any]:
    return {"role": "anon"}
