from typing import Dict, Iterable, List, Optional, Set
from pydantic import BaseModel, Field, PrivateAttr, model_validator

SUPERUSER_GROUP = "super_admin"
ADMIN_GROUPS = ("super_admin", "admin")


class Principal(BaseModel):
    """Authenticated caller with resolved groups and permission codenames."""

    user_id: Optional[str] = None
    email: Optional[str] = None

    groups: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)

    is_superuser: bool = False
    is_admin: bool = False

    # set when a share recipient acts on the owner's account; user_id is then the owner
    acting_for: Optional[str] = None
    actor_id: Optional[str] = None

    _permission_set: Set[str] = PrivateAttr(default_factory=set)
    _permission_cache: Dict[str, bool] = PrivateAttr(default_factory=dict)

    @model_validator(mode='after')
    def set_flags_from_groups(self):
        """Derive superuser and admin flags from group membership."""
        if self.acting_for is None:
            if SUPERUSER_GROUP in self.groups:
                self.is_superuser = True
            if any(group in ADMIN_GROUPS for group in self.groups):
                self.is_admin = True
        else:
            self.is_superuser = False
            self.is_admin = False
        self._permission_set = set(self.permissions)
        return self

    @property
    def is_delegated(self) -> bool:
        return self.acting_for is not None

    def has_permission(self, codename: str) -> bool:
        if codename not in self._permission_cache:
            self._permission_cache[codename] = codename in self._permission_set
        return self._permission_cache[codename]

    def permitted(self, required: str | Iterable[str], require_all: bool = False) -> bool:
        """
        Superusers pass every check. Otherwise `require_all` needs every
        codename, the default needs at least one. An empty requirement passes
        for all-of and fails for any-of.
        """
        if self.user_id is None:
            return False
        if self.is_superuser:
            return True

        codenames = [required] if isinstance(required, str) else list(required)
        if require_all:
            return all(self.has_permission(c) for c in codenames)
        return any(self.has_permission(c) for c in codenames)

    def missing(self, required: Iterable[str]) -> List[str]:
        if self.is_superuser:
            return []
        return [c for c in required if not self.has_permission(c)]
