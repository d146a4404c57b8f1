"""
Auth domain types - no dependencies on other auth modules.

NOTE: Keep this minimal. Only add types here if they are shared by
several auth submodules.
"""
from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class UserRecord:
    """Employee identity from the directory (immutable)."""
    employee_id: int
    email: str
    password_hash: str
    role: int
    first_name: str = ""
    active: bool = True


@dataclass(frozen=True)
class Principal:
    """Verified caller, decoded from an access token."""
    employee_id: int
    email: str
    role: int
    first_name: str = ""
    session_id: Optional[str] = None


@dataclass
class Session:
    """Server-side session. Times are epoch seconds."""
    session_id: str
    user_id: int
    refresh_token: str
    created_at: float
    expires_at: float
    last_activity: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        return cls(
            session_id=data["session_id"],
            user_id=int(data["user_id"]),
            refresh_token=data["refresh_token"],
            created_at=float(data["created_at"]),
            expires_at=float(data["expires_at"]),
            last_activity=float(data["last_activity"]),
        )
