# schemas.py: Request / response payloads for the Keyvault API
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import Field, model_validator

from models import DeviceStatus, FactorKind
from responses import CamelModel


# ============================================================
# REQUESTS
# ============================================================

class MkdfConfig(CamelModel):
    mkdf_version: int = Field(default=1, ge=1)
    required_factors: int = Field(default=2, ge=1)
    enabled_factors: List[FactorKind] = Field(..., min_length=1)
    device_fingerprint_required: bool = False
    recovery_threshold: int = Field(default=2, ge=1)

    @model_validator(mode="after")
    def check_factor_count(self):
        if len(set(self.enabled_factors)) != len(self.enabled_factors):
            raise ValueError("enabledFactors must not contain duplicates")
        if self.required_factors > len(self.enabled_factors):
            raise ValueError("requiredFactors cannot exceed the number of enabledFactors")
        return self

    def factor_config(self) -> dict:
        return {
            "enabledFactors": [f.value for f in self.enabled_factors],
            "deviceFingerprintRequired": self.device_fingerprint_required,
        }


class DeviceInfo(CamelModel):
    device_name: str = Field(..., min_length=1, max_length=255)
    device_fingerprint: str = Field(..., min_length=1)
    # Falls back to the organization public key when the client has no device keypair
    public_key: Optional[str] = None
    encrypted_device_key: str = Field(..., min_length=1)
    key_derivation_salt: str = Field(..., min_length=1)
    encryption_iv: str = Field(..., min_length=1)
    combination_salt: str = Field(..., min_length=1)
    pin_salt: Optional[str] = None


class OrganizationCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)
    owner_id: Optional[str] = None
    public_key: str = Field(..., min_length=1)
    encrypted_private_key: str = Field(..., min_length=1)
    key_derivation_salt: str = Field(..., min_length=1)
    encryption_iv: str = Field(..., min_length=1)
    mkdf_config: MkdfConfig
    device_info: DeviceInfo

    @model_validator(mode="before")
    @classmethod
    def accept_column_alias(cls, values):
        # Older clients send the column name "privateKeyEncrypted"
        if isinstance(values, dict) and "privateKeyEncrypted" in values and "encryptedPrivateKey" not in values:
            values = {**values, "encryptedPrivateKey": values["privateKeyEncrypted"]}
        return values


class OrganizationUpdate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)


class ProjectCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)
    wrapped_symmetric_key: str = Field(..., min_length=1)


class ProjectUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    wrapped_symmetric_key: Optional[str] = Field(default=None, min_length=1)


class ClientInfo(CamelModel):
    user_agent: str = "Unknown"
    ip_address: str = "Unknown"
    # Correlation id of the HTTP request, copied onto audit rows
    request_id: Optional[str] = None


# ============================================================
# RESPONSES
# ============================================================

MAX_PAGE_SIZE = 100


def clamp_page(page: int, limit: int) -> Tuple[int, int]:
    """Page is at least 1; limit is within [1, MAX_PAGE_SIZE]"""
    return max(1, page), max(1, min(limit, MAX_PAGE_SIZE))


class Pagination(CamelModel):
    total: int
    page: int
    limit: int
    pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        pages = (total + limit - 1) // limit
        return cls(
            total=total,
            page=page,
            limit=limit,
            pages=pages,
            has_next=page < pages,
            has_prev=page > 1,
        )


class OrganizationCreated(CamelModel):
    organization_id: str
    device_registration_id: str


class OrganizationOut(CamelModel):
    id: str
    name: str
    owner_id: str
    public_key: str
    mkdf_version: int
    required_factors: int
    factor_config: dict
    recovery_threshold: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrganizationSummary(CamelModel):
    id: str
    name: str
    mkdf_version: int
    required_factors: int
    created_at: Optional[datetime] = None


class OrganizationPage(CamelModel):
    organizations: List[OrganizationSummary]
    pagination: Pagination


class Deleted(CamelModel):
    deleted: bool = True
    id: str


class DeviceOut(CamelModel):
    id: str
    organization_id: str
    device_name: str
    device_fingerprint: str
    status: DeviceStatus
    is_active: bool
    last_used: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class DeviceRevoked(CamelModel):
    id: str
    organization_id: str
    status: DeviceStatus = DeviceStatus.REVOKED
    already_revoked: bool
    revoked_at: Optional[datetime] = None


class DeviceKeyMaterial(CamelModel):
    id: str
    device_name: str
    device_fingerprint: str
    public_key: str
    encrypted_device_key: str
    key_derivation_salt: str
    encryption_iv: str
    combination_salt: Optional[str] = None
    pin_salt: Optional[str] = None
    last_used: Optional[datetime] = None


class KeyBundle(CamelModel):
    organization_id: str
    public_key: str
    encrypted_private_key: str
    key_derivation_salt: str
    encryption_iv: str
    mkdf_version: int
    required_factors: int
    factor_config: dict
    recovery_threshold: Optional[int] = None
    device_info: Optional[DeviceKeyMaterial] = None


class ProjectOut(CamelModel):
    id: str
    organization_id: str
    name: str
    wrapped_symmetric_key: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProjectSummary(CamelModel):
    id: str
    organization_id: str
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProjectPage(CamelModel):
    projects: List[ProjectSummary]
    pagination: Pagination


class Created(CamelModel):
    id: str
