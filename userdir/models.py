"""Domain models for the user directory."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Mapping, Optional


class Role(str, Enum):
    """Roles the directory assigns to new accounts."""

    ADMIN = "admin"
    USER = "user"


@dataclass(frozen=True)
class RedactedUser:
    """A record projection without the stored credential."""

    id: str
    email: str
    name: str
    role: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "email": self.email, "name": self.name, "role": self.role}


@dataclass(frozen=True)
class DeletedUser:
    id: str
    email: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "email": self.email}


@dataclass(frozen=True)
class UserRecord:
    """Represents a user account stored in the directory collection.

    ``role`` is kept as the stored string. New accounts only receive
    :class:`Role` values, but collections written elsewhere may carry other
    roles; those load as-is and never count as admin.
    """

    id: str
    email: str
    name: str
    role: str
    password_credential: str
    created_at: datetime

    def summary(self) -> RedactedUser:
        return RedactedUser(id=self.id, email=self.email, name=self.name, role=self.role)

    def deletion_summary(self) -> DeletedUser:
        return DeletedUser(id=self.id, email=self.email)

    def public_view(self) -> Dict[str, str]:
        """Every field except the stored credential."""

        view = self.summary().to_dict()
        view["createdAt"] = self.created_at.isoformat()
        return view

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "passwordCredential": self.password_credential,
            "createdAt": self.created_at.isoformat(),
        }

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "UserRecord":
        """Build a record from its persisted form.

        Files written by the earlier JSON-file service stored the credential
        under ``password``; both keys are accepted.
        """

        required_fields = {"id", "email", "role", "createdAt"}
        missing = required_fields - data.keys()
        if missing:
            raise ValueError(f"Missing required record fields: {', '.join(sorted(missing))}")

        credential = data.get("passwordCredential", data.get("password"))
        if credential is None:
            raise ValueError("Missing required record fields: passwordCredential")

        role = str(data["role"]).strip()
        if not role:
            raise ValueError("Record role must not be empty")

        email = str(data["email"])
        name = data.get("name") or email.split("@", 1)[0]
        created_at = datetime.fromisoformat(str(data["createdAt"]).replace("Z", "+00:00"))

        return UserRecord(
            id=str(data["id"]),
            email=email,
            name=str(name),
            role=role,
            password_credential=str(credential),
            created_at=created_at,
        )


@dataclass(frozen=True)
class Principal:
    """The authenticated identity making a request."""

    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def parse_role(value: Optional[str]) -> Optional[Role]:
    if value is None:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


__all__ = ["Role", "RedactedUser", "DeletedUser", "UserRecord", "Principal", "parse_role"]
