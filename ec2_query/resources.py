"""Decoded EC2 resources and per-action response envelopes.

Each response model mirrors the children of one action's response root
element (``<DescribeImagesResponse>``). Field names are Pythonic; the EC2
element names are carried as validation aliases, and nested EC2 paths such
as ``placement/availabilityZone`` or ``groupSet/item`` as AliasPaths.

These records only exist as decode targets: a fresh one is created for every
response and handed to the caller.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasPath, Field, field_validator

from ec2_query.models import (
    BlockDeviceMapping,
    IPPerm,
    SecurityGroup,
    Tag,
    XmlModel,
)

SPOT_LIFECYCLE = "spot"


# =============================================================================
# Instances
# =============================================================================


class InstanceState(XmlModel):
    """Current state of an instance.

    Bits 15-8 of the code have unpublished meaning; compare names, or mask
    the code with 0xFF.
    """

    code: int = 0
    name: str = ""


class InstanceStateChange(XmlModel):
    """Previous and current state of an instance after a state change request."""

    instance_id: str = Field(default="", validation_alias="instanceId")
    current_state: InstanceState = Field(
        default_factory=InstanceState, validation_alias="currentState"
    )
    previous_state: InstanceState = Field(
        default_factory=InstanceState, validation_alias="previousState"
    )


class InstanceStateReason(XmlModel):
    code: str = ""
    message: str = ""


class IamInstanceProfile(XmlModel):
    arn: str = ""
    id: str = ""


class ProductCode(XmlModel):
    product_code: str = Field(default="", validation_alias="productCode")
    type: str = Field(default="", description="devpay | marketplace")


class EBS(XmlModel):
    volume_id: str = Field(default="", validation_alias="volumeId")
    status: str = ""
    attach_time: str = Field(default="", validation_alias="attachTime")
    delete_on_termination: bool = Field(default=False, validation_alias="deleteOnTermination")


class BlockDevice(XmlModel):
    """A block device attached to a running instance."""

    device_name: str = Field(default="", validation_alias="deviceName")
    ebs: EBS = Field(default_factory=EBS)


class InstanceNetworkInterfaceAttachment(XmlModel):
    attachment_id: str = Field(default="", validation_alias="attachmentId")
    device_index: int = Field(default=0, validation_alias="deviceIndex")
    status: str = Field(default="", description="attaching | attached | detaching | detached")
    attach_time: str = Field(default="", validation_alias="attachTime")
    delete_on_termination: bool = Field(default=False, validation_alias="deleteOnTermination")


class InstanceNetworkInterfaceAssociation(XmlModel):
    """Elastic IP association of a network interface or private address."""

    public_ip: str = Field(default="", validation_alias="publicIp")
    public_dns_name: str = Field(default="", validation_alias="publicDnsName")
    ip_owner_id: str = Field(default="", validation_alias="ipOwnerId")


class InstancePrivateIpAddress(XmlModel):
    private_ip_address: str = Field(default="", validation_alias="privateIpAddress")
    private_dns_name: str = Field(default="", validation_alias="privateDnsName")
    primary: bool = False
    association: InstanceNetworkInterfaceAssociation = Field(
        default_factory=InstanceNetworkInterfaceAssociation
    )


class InstanceNetworkInterface(XmlModel):
    """A network interface attached to an instance."""

    id: str = Field(default="", validation_alias="networkInterfaceId")
    description: str = ""
    subnet_id: str = Field(default="", validation_alias="subnetId")
    vpc_id: str = Field(default="", validation_alias="vpcId")
    owner_id: str = Field(default="", validation_alias="ownerId")
    status: str = Field(default="", description="available | attaching | in-use | detaching")
    mac_address: str = Field(default="", validation_alias="macAddress")
    private_ip_address: str = Field(default="", validation_alias="privateIpAddress")
    private_dns_name: str = Field(default="", validation_alias="privateDnsName")
    source_dest_check: bool = Field(default=False, validation_alias="sourceDestCheck")
    security_groups: list[SecurityGroup] = Field(
        default_factory=list, validation_alias=AliasPath("groupSet", "item")
    )
    attachment: InstanceNetworkInterfaceAttachment = Field(
        default_factory=InstanceNetworkInterfaceAttachment
    )
    association: InstanceNetworkInterfaceAssociation = Field(
        default_factory=InstanceNetworkInterfaceAssociation
    )
    private_ip_addresses: list[InstancePrivateIpAddress] = Field(
        default_factory=list, validation_alias=AliasPath("privateIpAddressesSet", "item")
    )


class Instance(XmlModel):
    """A running (or recently running) instance.

    owner_id is not part of the instance element; it is copied from the
    enclosing reservation after decoding.
    """

    # General
    instance_id: str = Field(default="", validation_alias="instanceId")
    instance_type: str = Field(default="", validation_alias="instanceType")
    availability_zone: str = Field(
        default="", validation_alias=AliasPath("placement", "availabilityZone")
    )
    tags: list[Tag] = Field(default_factory=list, validation_alias=AliasPath("tagSet", "item"))
    state: InstanceState = Field(default_factory=InstanceState, validation_alias="instanceState")
    reason: str = ""
    state_reason: InstanceStateReason = Field(
        default_factory=InstanceStateReason, validation_alias="stateReason"
    )
    image_id: str = Field(default="", validation_alias="imageId")
    key_name: str = Field(default="", validation_alias="keyName")
    monitoring: str = Field(default="", validation_alias=AliasPath("monitoring", "state"))
    iam_instance_profile: IamInstanceProfile = Field(
        default_factory=IamInstanceProfile, validation_alias="iamInstanceProfile"
    )
    launch_time: str = Field(default="", validation_alias="launchTime")
    owner_id: str = ""

    # Specifics
    architecture: str = ""
    hypervisor: str = ""
    kernel_id: str = Field(default="", validation_alias="kernelId")
    ramdisk_id: str = Field(default="", validation_alias="ramdiskId")
    platform: str = ""
    virtualization_type: str = Field(default="", validation_alias="virtualizationType")
    ami_launch_index: int = Field(default=0, validation_alias="amiLaunchIndex")
    placement_group_name: str = Field(
        default="", validation_alias=AliasPath("placement", "groupName")
    )
    tenancy: str = Field(default="", validation_alias=AliasPath("placement", "tenancy"))
    instance_lifecycle: str = Field(default="", validation_alias="instanceLifecycle")
    spot_instance_request_id: str = Field(default="", validation_alias="spotInstanceRequestId")
    client_token: str = Field(default="", validation_alias="clientToken")
    product_codes: list[ProductCode] = Field(
        default_factory=list, validation_alias=AliasPath("productCodes", "item")
    )

    # Storage
    root_device_type: str = Field(default="", validation_alias="rootDeviceType")
    root_device_name: str = Field(default="", validation_alias="rootDeviceName")
    block_devices: list[BlockDevice] = Field(
        default_factory=list, validation_alias=AliasPath("blockDeviceMapping", "item")
    )
    ebs_optimized: bool = Field(default=False, validation_alias="ebsOptimized")

    # Network
    dns_name: str = Field(default="", validation_alias="dnsName")
    private_dns_name: str = Field(default="", validation_alias="privateDnsName")
    ip_address: str = Field(default="", validation_alias="ipAddress")
    private_ip_address: str = Field(default="", validation_alias="privateIpAddress")
    subnet_id: str = Field(default="", validation_alias="subnetId")
    vpc_id: str = Field(default="", validation_alias="vpcId")
    security_groups: list[SecurityGroup] = Field(
        default_factory=list, validation_alias=AliasPath("groupSet", "item")
    )
    network_interfaces: list[InstanceNetworkInterface] = Field(
        default_factory=list, validation_alias=AliasPath("networkInterfaceSet", "item")
    )
    source_dest_check: bool = Field(default=False, validation_alias="sourceDestCheck")
    sriov_net_support: str = Field(default="", validation_alias="sriovNetSupport")

    @property
    def is_spot_instance(self) -> bool:
        return self.instance_lifecycle == SPOT_LIFECYCLE


class Reservation(XmlModel):
    reservation_id: str = Field(default="", validation_alias="reservationId")
    owner_id: str = Field(default="", validation_alias="ownerId")
    requester_id: str = Field(default="", validation_alias="requesterId")
    security_groups: list[SecurityGroup] = Field(
        default_factory=list, validation_alias=AliasPath("groupSet", "item")
    )
    instances: list[Instance] = Field(
        default_factory=list, validation_alias=AliasPath("instancesSet", "item")
    )


class RunInstancesResp(XmlModel):
    request_id: str = Field(default="", validation_alias="requestId")
    reservation_id: str = Field(default="", validation_alias="reservationId")
    owner_id: str = Field(default="", validation_alias="ownerId")
    security_groups: list[SecurityGroup] = Field(
        default_factory=list, validation_alias=AliasPath("groupSet", "item")
    )
    instances: list[Instance] = Field(
        default_factory=list, validation_alias=AliasPath("instancesSet", "item")
    )


class InstancesResp(XmlModel):
    request_id: str = Field(default="", validation_alias="requestId")
    reservations: list[Reservation] = Field(
        default_factory=list, validation_alias=AliasPath("reservationSet", "item")
    )


class InstanceStateChangeResp(XmlModel):
    """Response to TerminateInstances, StartInstances and StopInstances."""

    request_id: str = Field(default="", validation_alias="requestId")
    state_changes: list[InstanceStateChange] = Field(
        default_factory=list, validation_alias=AliasPath("instancesSet", "item")
    )


TerminateInstancesResp = InstanceStateChangeResp
StartInstancesResp = InstanceStateChangeResp
StopInstancesResp = InstanceStateChangeResp


# =============================================================================
# Addresses
# =============================================================================


class Address(XmlModel):
    public_ip: str = Field(default="", validation_alias="publicIp")
    domain: str = ""
    instance_id: str = Field(default="", validation_alias="instanceId")


class AddressesResp(XmlModel):
    request_id: str = Field(default="", validation_alias="requestId")
    addresses: list[Address] = Field(
        default_factory=list, validation_alias=AliasPath("addressesSet", "item")
    )


# =============================================================================
# Images and Snapshots
# =============================================================================


class Image(XmlModel):
    id: str = Field(default="", validation_alias="imageId")
    name: str = ""
    description: str = ""
    type: str = Field(default="", validation_alias="imageType")
    state: str = Field(default="", validation_alias="imageState")
    location: str = Field(default="", validation_alias="imageLocation")
    public: bool = Field(default=False, validation_alias="isPublic")
    architecture: str = ""
    platform: str = ""
    product_codes: list[str] = Field(
        default_factory=list, validation_alias=AliasPath("productCodes", "item")
    )
    kernel_id: str = Field(default="", validation_alias="kernelId")
    ramdisk_id: str = Field(default="", validation_alias="ramdiskId")
    state_reason: str = Field(default="", validation_alias=AliasPath("stateReason", "message"))
    owner_id: str = Field(default="", validation_alias="imageOwnerId")
    owner_alias: str = Field(default="", validation_alias="imageOwnerAlias")
    root_device_type: str = Field(default="", validation_alias="rootDeviceType")
    root_device_name: str = Field(default="", validation_alias="rootDeviceName")
    virtualization_type: str = Field(default="", validation_alias="virtualizationType")
    hypervisor: str = ""
    block_devices: list[BlockDeviceMapping] = Field(
        default_factory=list, validation_alias=AliasPath("blockDeviceMapping", "item")
    )

    @field_validator("product_codes", mode="before")
    @classmethod
    def _product_code_names(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [
                (item.get("productCode") or "") if isinstance(item, dict) else (item or "")
                for item in value
            ]
        return value


class ImagesResp(XmlModel):
    request_id: str = Field(default="", validation_alias="requestId")
    images: list[Image] = Field(
        default_factory=list, validation_alias=AliasPath("imagesSet", "item")
    )


class Snapshot(XmlModel):
    id: str = Field(default="", validation_alias="snapshotId")
    volume_id: str = Field(default="", validation_alias="volumeId")
    volume_size: str = Field(default="", validation_alias="volumeSize")
    status: str = ""
    start_time: str = Field(default="", validation_alias="startTime")
    description: str = ""
    progress: str = ""
    owner_id: str = Field(default="", validation_alias="ownerId")
    owner_alias: str = Field(default="", validation_alias="ownerAlias")
    tags: list[Tag] = Field(default_factory=list, validation_alias=AliasPath("tagSet", "item"))


class CreateSnapshotResp(Snapshot):
    request_id: str = Field(default="", validation_alias="requestId")


class SnapshotsResp(XmlModel):
    request_id: str = Field(default="", validation_alias="requestId")
    snapshots: list[Snapshot] = Field(
        default_factory=list, validation_alias=AliasPath("snapshotSet", "item")
    )


# =============================================================================
# Security Groups
# =============================================================================


class SecurityGroupInfo(SecurityGroup):
    owner_id: str = Field(default="", validation_alias="ownerId")
    description: str = Field(default="", validation_alias="groupDescription")
    ip_perms: list[IPPerm] = Field(
        default_factory=list, validation_alias=AliasPath("ipPermissions", "item")
    )


class SecurityGroupsResp(XmlModel):
    request_id: str = Field(default="", validation_alias="requestId")
    groups: list[SecurityGroupInfo] = Field(
        default_factory=list, validation_alias=AliasPath("securityGroupInfo", "item")
    )


class CreateSecurityGroupResp(SecurityGroup):
    request_id: str = Field(default="", validation_alias="requestId")


# =============================================================================
# Generic
# =============================================================================


class SimpleResp(XmlModel):
    """Response carrying nothing beyond a request id and a success flag."""

    request_id: str = Field(default="", validation_alias="requestId")
    return_value: bool = Field(default=False, validation_alias="return")
