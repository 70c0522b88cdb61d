"""Session Context and Role Permissions.

This module defines the authenticated session handed to every command, and the
role-to-permission matrix used to answer `has_permission`.

Security Impact:
    - Permissions are derived from the role, never supplied by the caller
    - Expired sessions hold no permissions at all
    - Sessions carry ids only; no credentials are stored

Architecture:
    - Pure domain model; session issuance belongs to the host application
    - Commands consult the session through `has_permission` only
"""

from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.domain.enums import Permission, UserRole
from src.domain.profiles import UserProfile

DEFAULT_SESSION_TIMEOUT_MINUTES = 30

_PATIENT_PERMISSIONS = frozenset({
    Permission.VIEW_OWN_PROFILE,
    Permission.EDIT_OWN_PROFILE,
    Permission.VIEW_OWN_APPOINTMENTS,
    Permission.SCHEDULE_OWN_APPOINTMENT,
    Permission.VIEW_OWN_CLINICAL_DOCUMENTS,
})

_PHYSICIAN_PERMISSIONS = _PATIENT_PERMISSIONS | frozenset({
    Permission.VIEW_ALL_PATIENTS,
    Permission.CREATE_PATIENT_PROFILE,
    Permission.VIEW_PATIENT_PROFILE,
    Permission.VIEW_PHYSICIAN_PROFILE,
    Permission.CREATE_CLINICAL_DOCUMENT,
    Permission.UPDATE_CLINICAL_DOCUMENT,
    Permission.VIEW_ALL_APPOINTMENTS,
    Permission.SCHEDULE_ANY_APPOINTMENT,
    Permission.EDIT_OWN_AVAILABILITY,
})

ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.PATIENT: _PATIENT_PERMISSIONS,
    UserRole.PHYSICIAN: _PHYSICIAN_PERMISSIONS,
    UserRole.ADMINISTRATOR: frozenset(Permission),
}


class SessionContext(BaseModel):
    """Authenticated user session.

    Parameters:
        user_id: Profile id of the signed-in user
        username: Login name
        role: Role that determines the permission set
        session_id: Unique session identifier
        login_time: When the session was issued
        last_activity: Last time the session was used
        timeout_minutes: Idle minutes after which the session expires

    Example Usage:
        ```python
        session = SessionContext.for_profile(physician_profile)
        if session.has_permission(Permission.CREATE_CLINICAL_DOCUMENT):
            ...
        ```
    """

    user_id: UUID
    username: str
    role: UserRole
    session_id: UUID = Field(default_factory=uuid4)
    login_time: datetime = Field(default_factory=datetime.now)
    last_activity: datetime = Field(default_factory=datetime.now)
    timeout_minutes: int = Field(default=DEFAULT_SESSION_TIMEOUT_MINUTES, gt=0)

    model_config = ConfigDict(validate_assignment=True)

    @classmethod
    def for_profile(cls, profile: UserProfile, timeout_minutes: Optional[int] = None) -> 'SessionContext':
        """Open a session for a profile."""
        session = cls(user_id=profile.id, username=profile.username, role=profile.role)
        if timeout_minutes is not None:
            session.timeout_minutes = timeout_minutes
        return session

    @property
    def permissions(self) -> FrozenSet[Permission]:
        return ROLE_PERMISSIONS.get(self.role, frozenset())

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return now - self.last_activity > timedelta(minutes=self.timeout_minutes)

    def update_activity(self) -> None:
        self.last_activity = datetime.now()

    def has_permission(self, permission: Permission) -> bool:
        """Check a permission against the role matrix; expired sessions have none."""
        if self.is_expired():
            return False
        return permission in self.permissions

    def is_role(self, *roles: UserRole) -> bool:
        return self.role in roles
