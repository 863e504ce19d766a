from enum import Enum


class AuditCategory(str, Enum):
    SYSTEM = "system"
    SECURITY = "security"
    DATA_ACCESS = "data_access"
    USER_ACTION = "user_action"
