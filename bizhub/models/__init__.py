from bizhub.models.base import Base
from bizhub.models.invitation import InvitationStatus, UserInvitation
from bizhub.models.permission_exception import PermissionException
from bizhub.models.security_event import SecurityEvent, SecuritySeverity
from bizhub.models.system_setting import SystemSetting
from bizhub.models.user import User

__all__ = [
    "Base",
    "User",
    "SystemSetting",
    "UserInvitation",
    "InvitationStatus",
    "SecurityEvent",
    "SecuritySeverity",
    "PermissionException",
]
