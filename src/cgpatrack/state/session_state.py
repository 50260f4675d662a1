from dataclasses import dataclass
from typing import Optional


@dataclass
class SessionState:
    uid: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def clear(self) -> None:
        self.uid = None
        self.email = None
        self.username = None
        self.token = None
