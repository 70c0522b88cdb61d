"""User profile model consumed through ProfileLookupPort."""

from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.domain.enums import UserRole


class UserProfile(BaseModel):
    """Identity record for a patient, physician or administrator.

    Parameters:
        id: Profile identifier
        username: Login name
        name: Display name
        role: UserRole of the profile
        patient_ids: Patients under the care of a physician (empty for other roles)
    """

    id: UUID = Field(default_factory=uuid4, description="Profile identifier")
    username: str = Field(..., description="Login name")
    name: Optional[str] = Field(None, description="Display name")
    role: UserRole = Field(..., description="Role of the profile")
    patient_ids: List[UUID] = Field(default_factory=list, description="Patients under care (physicians)")

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Username cannot be empty")
        return v

    @property
    def display_name(self) -> str:
        return self.name or self.username

    def has_patient(self, patient_id: UUID) -> bool:
        """Check whether a patient is under this physician's care."""
        return patient_id in self.patient_ids
