"""
Database models
All SQLAlchemy models should be defined here or imported here
"""

# Import Base for models to inherit from
from app.core.database import Base

# Import models here as they are created
from app.models.tenant import Tenant
from app.models.user import User, UserRole, UserStatus
from app.models.refresh_token import RefreshToken
from app.models.audit_log import AuditLog
from app.models.person import Person, Gender, NationalIdType
from app.models.group import Group, GroupType
from app.models.group_membership import GroupMembership, MembershipRole, MembershipStatus
from app.models.document import Document, DocumentType

# Export all models for easy imports
__all__ = [
    "Base",
    "Tenant",
    "User",
    "UserRole",
    "UserStatus",
    "RefreshToken",
    "AuditLog",
    "Person",
    "Gender",
    "NationalIdType",
    "Group",
    "GroupType",
    "GroupMembership",
    "MembershipRole",
    "MembershipStatus",
    "Document",
    "DocumentType",
]
