"""
docarchive Caller Context — who is browsing the archive.

The context is passed explicitly into every entry point (resolver, session,
admin graph); nothing reads ambient session state. Instances are frozen and
replaced wholesale on every explorer mount or authentication change.

Usage:
    from docarchive.engine.context import CallerContext

    caller = CallerContext.from_user_info(user_info, authenticated=True)
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Optional

ROLES = ("anonymous", "member", "admin")
MEMBER_TYPES = ("regular", "executive", "general_assembly", "honorary")

_RESOURCE_TITLES = {
    "executive": "Executive Resources",
    "general_assembly": "General Assembly Resources",
}


@dataclass(frozen=True)
class CallerContext:
    """
    Identity of the caller as declared by the authentication layer.

    role: "anonymous" | "member" | "admin"
    member_type: "regular" | "executive" | "general_assembly" | "honorary" | None
    """

    authenticated: bool = False
    role: str = "anonymous"
    member_type: Optional[str] = None
    user_id: Optional[int] = None
    username: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "CallerContext":
        return cls()

    @classmethod
    def from_user_info(
        cls,
        info: Optional[Dict[str, Any]],
        authenticated: bool = True,
    ) -> "CallerContext":
        """
        Build a context from the store's /user/me/ payload.

        ``is_admin`` makes an administrator, any other authenticated user is a
        member. Unknown member types are dropped rather than guessed.
        """
        if not authenticated or not info:
            return cls.anonymous()

        member_type = info.get("member_type")
        if member_type not in MEMBER_TYPES:
            member_type = None

        role = "admin" if info.get("is_admin") is True else "member"
        return cls(
            authenticated=True,
            role=role,
            member_type=member_type,
            user_id=info.get("id"),
            username=info.get("username"),
        )

    @property
    def is_admin(self) -> bool:
        return self.authenticated and self.role == "admin"

    @property
    def is_member(self) -> bool:
        return self.authenticated and self.role == "member"

    def with_member_type(self, member_type: Optional[str]) -> "CallerContext":
        """Return a new context with a different member type."""
        return dataclasses.replace(self, member_type=member_type)

    def resource_title(self) -> str:
        """Heading for the member resources page."""
        return _RESOURCE_TITLES.get(self.member_type or "", "Member Resources")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "authenticated": self.authenticated,
            "role": self.role,
            "member_type": self.member_type,
            "user_id": self.user_id,
            "username": self.username,
        }
