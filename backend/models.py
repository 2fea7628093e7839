# models.py: Database models for the Keyvault API
# - String UUID primary keys everywhere
# - Organisation key custody: MKDF-protected keypair per organization
# - Device registrations with soft revocation
# - Recovery backup placeholders
# - Projects / secrets (peripheral, cascade with their organization)
# - Append-only audit trail

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, Integer,
    Enum as SQLEnum, ForeignKey, Text, Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class FactorKind(str, PyEnum):
    PASSPHRASE = "passphrase"
    DEVICE = "device"
    PIN = "pin"


class DeviceStatus(str, PyEnum):
    ACTIVE = "active"
    REVOKED = "revoked"


class BackupType(str, PyEnum):
    RECOVERY_CODE = "recovery_code"
    TRUSTED_DEVICE = "trusted_device"


class AuditEventType(str, PyEnum):
    ORG_CREATED = "org.created"
    ORG_UPDATED = "org.updated"
    ORG_DELETED = "org.deleted"
    DEVICE_REVOKED = "device.revoked"
    KEYS_RETRIEVED = "keys.retrieved"
    PROJECT_CREATED = "project.created"
    PROJECT_UPDATED = "project.updated"
    PROJECT_DELETED = "project.deleted"


# Placeholder stored in recovery_backups.encrypted_backup until a client uploads one
PENDING_BACKUP = "pending"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False, default="")
    email = Column(String, unique=True, nullable=False, index=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    organizations = relationship("Organization", back_populates="owner", passive_deletes=True)


# ============================================================
# ORGANIZATIONS
# ============================================================

class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String(255), nullable=False)
    owner_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    public_key = Column(Text, nullable=False)
    private_key_encrypted = Column(Text, nullable=False)
    key_derivation_salt = Column(Text, nullable=False)
    encryption_iv = Column(Text, nullable=False)

    # MKDF
    mkdf_version = Column(Integer, nullable=False, default=1)
    required_factors = Column(Integer, nullable=False, default=2)
    factor_config = Column(JSON, nullable=False, default=dict)  # {"enabledFactors": [...], "deviceFingerprintRequired": bool}
    recovery_threshold = Column(Integer, default=2)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", back_populates="organizations")
    devices = relationship("DeviceRegistration", back_populates="organization", passive_deletes=True)
    recovery_backups = relationship("RecoveryBackup", back_populates="organization", passive_deletes=True)
    projects = relationship("Project", back_populates="organization", passive_deletes=True)

    __table_args__ = (
        Index("idx_org_owner_created", "owner_id", "created_at"),
    )


# ============================================================
# DEVICE REGISTRATIONS (MKDF factor: something you have)
# ============================================================

class DeviceRegistration(Base):
    __tablename__ = "device_registrations"

    id = Column(String, primary_key=True, default=new_uuid)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_name = Column(String(255), nullable=False)
    device_fingerprint = Column(Text, nullable=False)
    public_key = Column(Text, nullable=False)
    encrypted_device_key = Column(Text, nullable=False)
    key_derivation_salt = Column(Text, nullable=False)
    encryption_iv = Column(Text, nullable=False)
    combination_salt = Column(Text, nullable=True)
    pin_salt = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    last_used = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    organization = relationship("Organization", back_populates="devices")

    __table_args__ = (
        Index("idx_device_org_user_active", "organization_id", "user_id", "is_active"),
    )

    @property
    def status(self) -> DeviceStatus:
        return DeviceStatus.ACTIVE if self.is_active else DeviceStatus.REVOKED


# ============================================================
# RECOVERY BACKUPS
# ============================================================

class RecoveryBackup(Base):
    __tablename__ = "recovery_backups"

    id = Column(String, primary_key=True, default=new_uuid)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    backup_type = Column(String(50), nullable=False)
    encrypted_backup = Column(Text, nullable=False)
    backup_metadata = Column(JSON, nullable=True)  # {"usageLimit": n, "usageCount": n}
    is_used = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    organization = relationship("Organization", back_populates="recovery_backups")


# ============================================================
# PROJECTS & SECRETS
# ============================================================

class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=new_uuid)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    wrapped_symmetric_key = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    organization = relationship("Organization", back_populates="projects")
    secrets = relationship("Secret", back_populates="project", passive_deletes=True)


class Secret(Base):
    __tablename__ = "secrets"

    id = Column(String, primary_key=True, default=new_uuid)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    key_name = Column(String(255), nullable=False)
    ciphertext = Column(Text, nullable=False)
    nonce = Column(Text, nullable=False)
    auth_tag = Column(Text, nullable=False)
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="secrets")


# ============================================================
# AUDIT LOG (append-only)
# ============================================================

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=new_uuid)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)
    event_type = Column(SQLEnum(AuditEventType), nullable=False, index=True)
    user_id = Column(String, nullable=True, index=True)
    # Not a foreign key: entries outlive the organization they describe
    organization_id = Column(String, nullable=False, index=True)
    resource_type = Column(String, nullable=True)
    resource_id = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    # X-Request-ID of the originating call; repeats when a client retries with the same id
    request_id = Column(String, index=True, nullable=True)

    __table_args__ = (
        Index("idx_audit_org_timestamp", "organization_id", "timestamp"),
        Index("idx_audit_event_timestamp", "event_type", "timestamp"),
    )
