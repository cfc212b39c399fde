"""Client identity, configuration and request input models for ec2-query.

All models use Pydantic v2. Records that travel in both directions (a
SecurityGroup is sent as a request argument and read back from
DescribeSecurityGroups) derive from XmlModel: they are built from Python by
field name and validated from decoded XML by their EC2 element names.
Response-only records live in resources.py.
"""

from __future__ import annotations

from typing import Any, Self, get_args, get_origin

from pydantic import (
    AliasPath,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)


# =============================================================================
# XML-backed base
# =============================================================================


class XmlModel(BaseModel):
    """Base for records decoded from EC2 XML.

    Unknown elements are ignored, since EC2 adds fields between API
    versions. Empty elements (``<reason/>``) decode as None and take the
    field's default, so absent and empty are indistinguishable. An empty
    ``<item/>`` in a set of records decodes as a record of defaults.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _empty_element_takes_default(cls, value: Any, info: ValidationInfo) -> Any:
        if info.field_name is None:
            return value
        field = cls.model_fields[info.field_name]
        if value is None:
            return field.get_default(call_default_factory=True)
        if isinstance(value, list) and _holds_records(field.annotation):
            return [{} if item is None else item for item in value]
        return value


def _holds_records(annotation: Any) -> bool:
    """True for ``list[SomeModel]`` annotations."""
    if get_origin(annotation) is not list:
        return False
    args = get_args(annotation)
    return bool(args) and isinstance(args[0], type) and issubclass(args[0], BaseModel)


# =============================================================================
# Client Identity
# =============================================================================


class Credentials(BaseModel):
    """Signing material for one client. Never mutated after construction."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    access_key: str = Field(min_length=1, description="AWS access key id")
    secret_key: str = Field(min_length=1, repr=False, description="AWS secret access key")
    token: str | None = Field(
        default=None, repr=False, description="Session token, sent as SecurityToken"
    )


class Region(BaseModel):
    """A region name and the base URL of its EC2 endpoint."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(description="Region name, e.g. us-east-1")
    ec2_endpoint: str = Field(description="Base URL, e.g. https://ec2.us-east-1.amazonaws.com")


class ClientConfig(BaseModel):
    """Top-level client configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    region: str = Field(default="us-east-1", description="Region name")
    endpoint: str | None = Field(
        default=None, description="EC2 endpoint URL; overrides the region's default"
    )
    credentials: Credentials | None = Field(
        default=None, description="Signing credentials; read from the environment if omitted"
    )
    debug: bool = Field(default=False, description="Log raw requests and responses")
    timeout: float = Field(default=30.0, gt=0, description="Transport timeout in seconds")


# =============================================================================
# Records shared by requests and responses
# =============================================================================


class SecurityGroup(XmlModel):
    """A security group reference.

    As a request argument either field may be empty; when both are set the
    id is used.
    """

    id: str = Field(default="", validation_alias="groupId")
    name: str = Field(default="", validation_alias="groupName")


class UserSecurityGroup(XmlModel):
    """A security group together with the account that owns it."""

    id: str = Field(default="", validation_alias="groupId")
    name: str = Field(default="", validation_alias="groupName")
    owner_id: str = Field(default="", validation_alias="userId")


class IPPerm(XmlModel):
    """One ingress allowance within a security group."""

    protocol: str = Field(default="", validation_alias="ipProtocol")
    from_port: int = Field(default=0, validation_alias="fromPort")
    to_port: int = Field(default=0, validation_alias="toPort")
    source_ips: list[str] = Field(
        default_factory=list, validation_alias=AliasPath("ipRanges", "item")
    )
    source_groups: list[UserSecurityGroup] = Field(
        default_factory=list, validation_alias=AliasPath("groups", "item")
    )

    @field_validator("source_ips", mode="before")
    @classmethod
    def _cidr_ranges(cls, value: Any) -> Any:
        # <ipRanges><item><cidrIp>10.0.0.0/8</cidrIp></item></ipRanges>
        if value is None:
            return []
        if isinstance(value, list):
            return [
                (item.get("cidrIp") or "") if isinstance(item, dict) else (item or "")
                for item in value
            ]
        return value


class Tag(XmlModel):
    """Key/value metadata attached to a resource."""

    key: str = ""
    value: str = ""


class BlockDeviceMapping(XmlModel):
    """Association of a block device with an image or a launch request."""

    device_name: str = Field(default="", validation_alias="deviceName")
    virtual_name: str = Field(default="", validation_alias="virtualName")
    snapshot_id: str = Field(default="", validation_alias=AliasPath("ebs", "snapshotId"))
    volume_type: str = Field(default="", validation_alias=AliasPath("ebs", "volumeType"))
    volume_size: int = Field(default=0, validation_alias=AliasPath("ebs", "volumeSize"))
    delete_on_termination: bool = Field(
        default=False, validation_alias=AliasPath("ebs", "deleteOnTermination")
    )
    # I/O operations per second the volume supports
    iops: int = Field(default=0, validation_alias=AliasPath("ebs", "iops"))


def security_group_names(*names: str) -> list[SecurityGroup]:
    """Return security group references for the given names."""
    return [SecurityGroup(name=name) for name in names]


def security_group_ids(*ids: str) -> list[SecurityGroup]:
    """Return security group references for the given ids."""
    return [SecurityGroup(id=group_id) for group_id in ids]


# =============================================================================
# Request Options
# =============================================================================


class RunInstancesOptions(BaseModel):
    """Options for a RunInstances request.

    If min_count and max_count are both zero a single instance is launched;
    if only max_count is zero, min_count is used for both.
    """

    model_config = ConfigDict(extra="forbid")

    image_id: str = Field(min_length=1, description="AMI to launch")
    min_count: int = Field(default=0, ge=0)
    max_count: int = Field(default=0, ge=0)
    key_name: str = ""
    instance_type: str = ""
    security_groups: list[SecurityGroup] = Field(default_factory=list)
    kernel_id: str = ""
    ramdisk_id: str = ""
    user_data: bytes | None = Field(default=None, description="Raw bytes, sent base64 encoded")
    availability_zone: str = ""
    placement_group_name: str = ""
    monitoring: bool = False
    subnet_id: str = ""
    disable_api_termination: bool = False
    shutdown_behavior: str = Field(default="", description="stop | terminate")
    private_ip_address: str = ""
    iam_instance_profile_arn: str = ""
    iam_instance_profile_name: str = ""
    block_device_mappings: list[BlockDeviceMapping] = Field(default_factory=list)
    ebs_optimized: bool = False

    @model_validator(mode="after")
    def check_counts(self) -> Self:
        if self.max_count and self.max_count < self.min_count:
            raise ValueError("max_count must not be lower than min_count")
        return self

    def instance_counts(self) -> tuple[int, int]:
        """Return the effective (MinCount, MaxCount) pair."""
        if self.min_count == 0 and self.max_count == 0:
            return 1, 1
        if self.max_count == 0:
            return self.min_count, self.min_count
        return self.min_count, self.max_count
