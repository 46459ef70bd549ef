"""Payload contracts for queued jobs and the producer endpoints that build them."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)

from .models import DeliveryType


RoleName = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)
]
"""Validated role name as stored in a user's role set."""


class NotificationRequest(BaseModel):
    """Abstract notification target plus content, as sent by producers.

    An empty recipient list is accepted by the model itself so that
    HTTP boundaries can answer it with a 400 instead of a schema error.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str
    message: str
    html_message: str | None = Field(default=None, alias="htmlMessage")
    role_names: list[RoleName] = Field(default_factory=list, alias="roleNames")
    user_ids: list[str] = Field(default_factory=list, alias="userIds")
    delivery_type: DeliveryType = Field(
        default=DeliveryType.BROWSER, alias="deliveryType"
    )

    @field_validator("role_names", "user_ids", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def has_recipients(self) -> bool:
        return bool(self.role_names) or bool(self.user_ids)

    def to_job_payload(self) -> dict[str, Any]:
        """Serialise using the wire aliases expected by the worker."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EmailPayload(BaseModel):
    """Content of an ``email`` job."""

    to: str | list[str]
    subject: str
    text: str | None = None
    html: str | None = None
    cc: str | list[str] | None = None
    bcc: str | list[str] | None = None
    template: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    @field_validator("to", "cc", "bcc")
    @classmethod
    def _drop_blank_addresses(cls, value: str | list[str] | None) -> str | list[str] | None:
        if isinstance(value, str):
            return value.strip()
        if value is None:
            return None
        return [address.strip() for address in value if address.strip()]

    @model_validator(mode="after")
    def _require_content(self) -> "EmailPayload":
        if not self.to:
            raise ValueError("email requires at least one recipient in 'to'")
        if not self.subject.strip():
            raise ValueError("email requires a non-empty 'subject'")
        if not (self.text or self.html or self.template):
            raise ValueError("email requires 'text', 'html' or 'template'")
        return self


class _ScanModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ScanStorage(_ScanModel):
    disk_mount_path: str = Field(alias="diskMountPath")
    total_gb: float = Field(alias="totalGB")
    used_gb: float = Field(alias="usedGB")


class ScanUser(_ScanModel):
    username: str
    local_account: bool = Field(alias="localAccount")


class ScanHost(_ScanModel):
    hostname: str = Field(min_length=1)
    ipv4: str
    ipv6: str
    mac_address: str = Field(alias="macAddress")
    cores: int
    memory_gb: float = Field(alias="memoryGB")
    storage: list[ScanStorage]
    users: list[ScanUser]


class ScanService(_ScanModel):
    name: str
    running: bool


class ScanSoftware(_ScanModel):
    name: str
    version: str
    install_location: str


class ScanOS(_ScanModel):
    name: str
    version: str
    patch_version: str


class ScanResult(_ScanModel):
    """Report posted by the scanning agent running on a server."""

    host: ScanHost
    services: list[ScanService]
    software: list[ScanSoftware]
    os: ScanOS

    def to_document(self) -> dict[str, Any]:
        """Return the report in the agent's original key layout."""

        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "EmailPayload",
    "NotificationRequest",
    "RoleName",
    "ScanResult",
]
