"""
docarchive Visibility — which documents a caller may request.

Resolution is a pure lookup on the caller's declared role; it never looks
at document content, titles or categories. Anything uncertain about the
role resolves to the public tier (fail closed).

Resolution order:
    1. Explorer mode PUBLIC          → public (the public Resources page)
    2. Unauthenticated / anonymous   → public
    3. Administrator                 → unrestricted (audit view, tag shown per row)
    4. Explorer mode PERSONAL        → no client parameter; the store scopes results
    5. Member with explicit override → the override
    6. Member                        → member_type lookup:
                                       executive → executive
                                       general_assembly → general_assembly
                                       anything else → member
    7. Unknown role                  → public, logged as a security event

Visibility is a single exact-match tag. An executive is not assumed to see
general_assembly or member documents; widening tiers is the store's call.

The store remains the enforcement point. The resolver only narrows what is
requested, and VisibilityFilter.accepts() drops anything the store should not
have returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from docarchive.documents.models import Document, Visibility
from docarchive.engine.context import CallerContext
from docarchive.engine.errors import ArchiveSecurityError, ArchiveValidationError
from docarchive.engine.logging import log, log_security_event

logger = logging.getLogger("docarchive.security.permissions")


class ExplorerMode(str, Enum):
    PUBLIC = "public"
    MEMBER = "member"
    PERSONAL = "personal"
    ADMIN = "admin"


MEMBER_TYPE_VISIBILITY: Dict[str, Visibility] = {
    "executive": Visibility.EXECUTIVE,
    "general_assembly": Visibility.GENERAL_ASSEMBLY,
}

_LIST_PATHS = {
    ExplorerMode.PUBLIC: "/archive/",
    ExplorerMode.MEMBER: "/members/archive/",
    ExplorerMode.PERSONAL: "/members/archive/personal/",
    ExplorerMode.ADMIN: "/admin/archive/",
}

_DOWNLOAD_PATHS = {
    ExplorerMode.PUBLIC: "/archive/{id}/download/",
    ExplorerMode.MEMBER: "/members/archive/{id}/download/",
    ExplorerMode.PERSONAL: "/members/archive/{id}/download/",
    ExplorerMode.ADMIN: "/admin/archive/{id}/download/",
}


@dataclass(frozen=True)
class VisibilityFilter:
    """
    Effective scope for one caller.

    visibility:    the single tag to request, or None
    unrestricted:  admin audit view, every tag is requested and rendered
    server_scoped: personal resources, the store decides; no client parameter
    """

    visibility: Optional[Visibility] = None
    unrestricted: bool = False
    server_scoped: bool = False

    @classmethod
    def public(cls) -> "VisibilityFilter":
        return cls(visibility=Visibility.PUBLIC)

    def as_params(self) -> Dict[str, str]:
        """Query parameters to send with ``GET documents``."""
        if self.visibility is None:
            return {}
        return {"visibility": self.visibility.value}

    def accepts(self, doc: Document) -> bool:
        """Client-side check on what the store returned."""
        if self.unrestricted or self.server_scoped:
            return True
        return doc.visibility == self.visibility

    def describe(self) -> str:
        if self.unrestricted:
            return "all"
        if self.server_scoped:
            return "personal"
        return self.visibility.value if self.visibility else "none"


def _coerce_visibility(value: Union[str, Visibility]) -> Visibility:
    try:
        return Visibility(value)
    except ValueError:
        raise ArchiveValidationError(
            f"Unknown visibility '{value}'",
            object_ref="visibility.override",
            validation_errors=[{"field": "visibility", "error": "unknown tag"}],
        )


class VisibilityResolver:
    """Maps a CallerContext (and explorer mode) onto a VisibilityFilter."""

    def default_mode(self, caller: CallerContext) -> ExplorerMode:
        if caller.is_admin:
            return ExplorerMode.ADMIN
        if caller.is_member:
            return ExplorerMode.MEMBER
        return ExplorerMode.PUBLIC

    def resolve_scope(
        self,
        caller: CallerContext,
        mode: Optional[ExplorerMode] = None,
        override: Optional[Union[str, Visibility]] = None,
    ) -> VisibilityFilter:
        """
        Compute the visibility filter for a caller.

        Args:
            caller: The caller's declared identity.
            mode: Explorer flavour; defaults from the role.
            override: Explicit visibility requested by a member view.
        """
        mode = mode or self.default_mode(caller)

        if mode is ExplorerMode.PUBLIC or not caller.authenticated or caller.role == "anonymous":
            return VisibilityFilter.public()

        if caller.role == "admin":
            return VisibilityFilter(unrestricted=True)

        if caller.role != "member":
            logger.warning(f"Unknown caller role {caller.role!r}: falling back to public scope")
            log(log_security_event(
                "unknown_role", caller.role, caller.member_type, "public", user_id=caller.user_id,
            ))
            return VisibilityFilter.public()

        if mode is ExplorerMode.ADMIN:
            log(log_security_event(
                "admin_scope_denied", caller.role, caller.member_type, None, user_id=caller.user_id,
            ))
            raise ArchiveSecurityError(
                "Administrator access required for the admin archive",
                object_ref="archive.admin",
                role=caller.role,
                required_role="admin",
            )

        if mode is ExplorerMode.PERSONAL:
            return VisibilityFilter(server_scoped=True)

        if override is not None:
            return VisibilityFilter(visibility=_coerce_visibility(override))

        tier = MEMBER_TYPE_VISIBILITY.get(caller.member_type or "", Visibility.MEMBER)
        return VisibilityFilter(visibility=tier)

    def list_path(self, mode: ExplorerMode) -> str:
        return _LIST_PATHS[mode]

    def download_path(self, mode: ExplorerMode, document_id: int) -> str:
        return _DOWNLOAD_PATHS[mode].format(id=document_id)


# Global singleton
visibility_resolver = VisibilityResolver()


def resolve_scope(
    caller: CallerContext,
    mode: Optional[ExplorerMode] = None,
    override: Optional[Union[str, Visibility]] = None,
) -> VisibilityFilter:
    """Shortcut for visibility_resolver.resolve_scope()."""
    return visibility_resolver.resolve_scope(caller, mode, override)
