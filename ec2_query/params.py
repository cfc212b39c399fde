"""Parameter encoding - Builds the flat query parameter map for one action.

Every EC2 Query request is a flat ``dict[str, str]``. Structured and repeated
arguments are spelled out as 1-based, gap-free indexed keys:

    InstanceId.1=i-1234            (plain list)
    BlockDeviceMapping.1.Ebs.VolumeSize=100   (list of records)
    IpPermissions.1.IpRanges.2.CidrIp=10.0.0.0/8   (nested lists)

Records are encoded from ParamField metadata rather than by hand, so one
helper covers every option model: required fields are always written,
optional fields only when set (an unset field is omitted, never sent as an
empty string).
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Sequence
from urllib.parse import urlencode

from ec2_query.models import IPPerm, SecurityGroup, Tag, UserSecurityGroup


class FieldKind(str, Enum):
    """How a ParamField's value is rendered on the wire."""

    STRING = "string"  # sent as-is
    INTEGER = "integer"  # decimal
    FLAG = "flag"  # "true" when set; never sent as "false"
    BASE64 = "base64"  # bytes, standard base64


@dataclass(frozen=True)
class ParamField:
    """Maps one attribute of an option model to a wire key.

    Attributes:
        attr: Attribute name on the source object.
        key: Wire key, relative to any prefix supplied at encode time.
        kind: Rendering rule.
        required: Write the value even when it is empty/zero.
    """

    attr: str
    key: str
    kind: FieldKind = FieldKind.STRING
    required: bool = False


def make_params(action: str) -> dict[str, str]:
    """Start a fresh parameter map for *action*."""
    return {"Action": action}


def add_params_list(params: dict[str, str], label: str, values: Iterable[str] | None) -> None:
    """Write ``<label>.1``, ``<label>.2``, ... for each value.

    Raises:
        TypeError: If *values* is a single string rather than a collection.
    """
    if isinstance(values, (str, bytes)):
        raise TypeError(f"{label} values must be a collection of strings, not {values!r}")
    if not values:
        return
    for i, value in enumerate(values, start=1):
        params[f"{label}.{i}"] = value


def _is_set(value: Any) -> bool:
    # False == 0, so unset flags are covered too
    return value not in (None, "", b"", 0)


def _render(value: Any, kind: FieldKind) -> str:
    if kind is FieldKind.FLAG:
        return "true" if value else "false"
    if kind is FieldKind.BASE64:
        return base64.b64encode(value).decode("ascii")
    if kind is FieldKind.INTEGER:
        return str(int(value))
    return str(value)


def encode_fields(
    params: dict[str, str],
    source: Any,
    fields: Sequence[ParamField],
    prefix: str = "",
) -> None:
    """Encode the attributes of *source* described by *fields*.

    Optional fields whose value is empty, zero, False or None are omitted.
    """
    for field in fields:
        value = getattr(source, field.attr)
        if not field.required and not _is_set(value):
            continue
        params[prefix + field.key] = _render(value, field.kind)


def encode_indexed(
    params: dict[str, str],
    label: str,
    items: Iterable[Any] | None,
    fields: Sequence[ParamField],
) -> None:
    """Encode each item under ``<label>.<i>.`` using *fields*."""
    if not items:
        return
    for i, item in enumerate(items, start=1):
        encode_fields(params, item, fields, prefix=f"{label}.{i}.")


# =============================================================================
# Field tables
# =============================================================================


BLOCK_DEVICE_MAPPING_FIELDS = (
    ParamField("device_name", "DeviceName"),
    ParamField("virtual_name", "VirtualName"),
    ParamField("snapshot_id", "Ebs.SnapshotId"),
    ParamField("volume_type", "Ebs.VolumeType"),
    ParamField("volume_size", "Ebs.VolumeSize", FieldKind.INTEGER),
    ParamField("delete_on_termination", "Ebs.DeleteOnTermination", FieldKind.FLAG),
    ParamField("iops", "Ebs.Iops", FieldKind.INTEGER),
)

RUN_INSTANCES_FIELDS = (
    ParamField("image_id", "ImageId", required=True),
    ParamField("instance_type", "InstanceType"),
    ParamField("key_name", "KeyName"),
    ParamField("kernel_id", "KernelId"),
    ParamField("ramdisk_id", "RamdiskId"),
    ParamField("user_data", "UserData", FieldKind.BASE64),
    ParamField("availability_zone", "Placement.AvailabilityZone"),
    ParamField("placement_group_name", "Placement.GroupName"),
    ParamField("monitoring", "Monitoring.Enabled", FieldKind.FLAG),
    ParamField("subnet_id", "SubnetId"),
    ParamField("disable_api_termination", "DisableApiTermination", FieldKind.FLAG),
    ParamField("shutdown_behavior", "InstanceInitiatedShutdownBehavior"),
    ParamField("private_ip_address", "PrivateIpAddress"),
    ParamField("iam_instance_profile_arn", "IamInstanceProfile.Arn"),
    ParamField("iam_instance_profile_name", "IamInstanceProfile.Name"),
    ParamField("ebs_optimized", "EbsOptimized", FieldKind.FLAG),
)

IP_PERM_FIELDS = (
    ParamField("protocol", "IpProtocol", required=True),
    ParamField("from_port", "FromPort", FieldKind.INTEGER, required=True),
    ParamField("to_port", "ToPort", FieldKind.INTEGER, required=True),
)

# Tag values may legitimately be empty
TAG_FIELDS = (
    ParamField("key", "Key", required=True),
    ParamField("value", "Value", required=True),
)


# =============================================================================
# Structured arguments
# =============================================================================


def _check_group(group: SecurityGroup | UserSecurityGroup) -> None:
    if not group.id and not group.name:
        raise ValueError("security group reference needs an id or a name")


def add_group_ref(
    params: dict[str, str],
    group: SecurityGroup | UserSecurityGroup,
    prefix: str = "",
) -> None:
    """Identify one security group, by id when it has one, else by name."""
    _check_group(group)
    if group.id:
        params[f"{prefix}GroupId"] = group.id
    else:
        params[f"{prefix}GroupName"] = group.name


def add_group_refs(
    params: dict[str, str],
    groups: Iterable[SecurityGroup] | None,
    id_label: str,
    name_label: str,
) -> None:
    """Identify several security groups.

    Groups with an id go under ``<id_label>.N``, the rest under
    ``<name_label>.N``; each label is numbered independently from 1.
    """
    if not groups:
        return
    id_index = name_index = 1
    for group in groups:
        _check_group(group)
        if group.id:
            params[f"{id_label}.{id_index}"] = group.id
            id_index += 1
        else:
            params[f"{name_label}.{name_index}"] = group.name
            name_index += 1


def add_ip_perms(params: dict[str, str], perms: Iterable[IPPerm] | None) -> None:
    """Encode ingress permissions as ``IpPermissions.<i>.*`` keys."""
    if not perms:
        return
    for i, perm in enumerate(perms, start=1):
        prefix = f"IpPermissions.{i}."
        encode_fields(params, perm, IP_PERM_FIELDS, prefix=prefix)
        for j, cidr in enumerate(perm.source_ips, start=1):
            params[f"{prefix}IpRanges.{j}.CidrIp"] = cidr
        for j, group in enumerate(perm.source_groups, start=1):
            group_prefix = f"{prefix}Groups.{j}."
            if group.owner_id:
                params[f"{group_prefix}UserId"] = group.owner_id
            add_group_ref(params, group, group_prefix)


def add_tags(params: dict[str, str], tags: Iterable[Tag] | None) -> None:
    encode_indexed(params, "Tag", tags, TAG_FIELDS)


def encode_query(params: dict[str, str]) -> str:
    """Encode *params* as a URL query string, one pair per key.

    Keys are emitted in sorted order so equal maps give equal URLs.
    """
    return urlencode(sorted(params.items()))
