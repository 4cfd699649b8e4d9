"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    User roles with increasing privilege levels.

    - SURVEYOR: Runs door-to-door interviews, owns their drafts
    - COORDINATOR: Oversees the surveyors of a sector
    - ADMIN: Parish office staff (catalogs, deletions, every draft)
    """
    SURVEYOR = "surveyor"
    COORDINATOR = "coordinator"
    ADMIN = "admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class SurveyDraftStatus(str, Enum):
    """
    Lifecycle of a stage-based survey draft.

    draft → in_progress → completed
    draft | in_progress → cancelled
    """
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def terminal(cls) -> set["SurveyDraftStatus"]:
        return {cls.COMPLETED, cls.CANCELLED}


class FamilySurveyStatus(str, Enum):
    """Survey completion status stored on the family row."""
    PENDING = "pending"
    COMPLETED = "completed"


class IdentityCategory(str, Enum):
    """Tag prefixed to generated identification numbers."""
    TEMP = "TEMP"
    DECEASED = "DECEASED"


class SurveyAuditAction(str, Enum):
    """Actions recorded in the survey audit trail."""
    CREATE = "create"
    STAGE_SAVE = "stage_save"
    MEMBER_ADD = "member_add"
    MEMBER_UPDATE = "member_update"
    MEMBER_DELETE = "member_delete"
    AUTO_SAVE = "auto_save"
    COMPLETE = "complete"
    CANCEL = "cancel"


# Legacy rows carried this prefix before deceased members had their own columns
LEGACY_DECEASED_PREFIXES = ("FALLECIDO", IdentityCategory.DECEASED.value)

DEFAULT_DRAFT_STATUS = SurveyDraftStatus.DRAFT

ROLES_CAN_SEE_ALL_DRAFTS = {Role.ADMIN, Role.COORDINATOR}
ROLES_CAN_DELETE_SURVEYS = [Role.ADMIN]
ROLES_CAN_MANAGE_CATALOGS = [Role.ADMIN]
