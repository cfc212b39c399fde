"""EC2 - One method per EC2 Query API action.

Every method follows the same shape: build a fresh parameter map, add the
action's arguments (optional ones only when set), dispatch, and return the
decoded response. Errors from the dispatcher propagate as-is; no partial
response is ever returned.
"""

from __future__ import annotations

import secrets
from datetime import datetime
from typing import Any, Callable, Iterable

import httpx

from ec2_query.config_loader import credentials_from_env, resolve_region
from ec2_query.filters import Filter, add_filter_params
from ec2_query.models import (
    ClientConfig,
    Credentials,
    IPPerm,
    Region,
    RunInstancesOptions,
    SecurityGroup,
    Tag,
)
from ec2_query.params import (
    BLOCK_DEVICE_MAPPING_FIELDS,
    RUN_INSTANCES_FIELDS,
    add_group_ref,
    add_group_refs,
    add_ip_perms,
    add_params_list,
    add_tags,
    encode_fields,
    encode_indexed,
    make_params,
)
from ec2_query.query import QueryDispatcher
from ec2_query.resources import (
    AddressesResp,
    CreateSecurityGroupResp,
    CreateSnapshotResp,
    ImagesResp,
    InstancesResp,
    RunInstancesResp,
    SecurityGroupsResp,
    SimpleResp,
    SnapshotsResp,
    StartInstancesResp,
    StopInstancesResp,
    TerminateInstancesResp,
)

# EC2 accepts client tokens of up to 64 ASCII characters; 32 random bytes
# hex encode to exactly that.
CLIENT_TOKEN_BYTES = 32


def client_token() -> str:
    """Return a fresh idempotency token for RunInstances."""
    return secrets.token_hex(CLIENT_TOKEN_BYTES)


class EC2:
    """Client for the EC2 Query API in one region.

    Usage:
        with EC2(credentials, region) as ec2:
            resp = ec2.describe_instances(filters=filters)
    """

    def __init__(
        self,
        credentials: Credentials,
        region: Region,
        *,
        debug: bool = False,
        http_client: httpx.Client | None = None,
        timeout: float = 30.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._query = QueryDispatcher(
            credentials,
            region,
            debug=debug,
            http_client=http_client,
            timeout=timeout,
            clock=clock,
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        http_client: httpx.Client | None = None,
    ) -> "EC2":
        """Build a client from a loaded configuration.

        Credentials missing from the configuration are read from the
        environment.

        Raises:
            ConfigError: If the region or credentials cannot be resolved.
        """
        credentials = config.credentials or credentials_from_env()
        return cls(
            credentials,
            resolve_region(config),
            debug=config.debug,
            http_client=http_client,
            timeout=config.timeout,
        )

    def __enter__(self) -> "EC2":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._query.close()

    @property
    def region(self) -> Region:
        return self._query.region

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    def run_instances(self, options: RunInstancesOptions) -> RunInstancesResp:
        """Launch new instances.

        A new ClientToken is generated for every call, so EC2 can discard a
        duplicate launch if the same request is delivered twice.
        """
        params = make_params("RunInstances")
        encode_fields(params, options, RUN_INSTANCES_FIELDS)
        min_count, max_count = options.instance_counts()
        params["MinCount"] = str(min_count)
        params["MaxCount"] = str(max_count)
        add_group_refs(params, options.security_groups, "SecurityGroupId", "SecurityGroup")
        encode_indexed(
            params,
            "BlockDeviceMapping",
            options.block_device_mappings,
            BLOCK_DEVICE_MAPPING_FIELDS,
        )
        params["ClientToken"] = client_token()

        resp = self._query.execute(params, RunInstancesResp)
        for instance in resp.instances:
            instance.owner_id = resp.owner_id
        return resp

    def terminate_instances(self, instance_ids: Iterable[str]) -> TerminateInstancesResp:
        params = make_params("TerminateInstances")
        add_params_list(params, "InstanceId", instance_ids)
        return self._query.execute(params, TerminateInstancesResp)

    def start_instances(self, *instance_ids: str) -> StartInstancesResp:
        """Start previously stopped EBS-backed instances."""
        params = make_params("StartInstances")
        add_params_list(params, "InstanceId", instance_ids)
        return self._query.execute(params, StartInstancesResp)

    def stop_instances(self, *instance_ids: str) -> StopInstancesResp:
        """Stop EBS-backed instances."""
        params = make_params("StopInstances")
        add_params_list(params, "InstanceId", instance_ids)
        return self._query.execute(params, StopInstancesResp)

    def reboot_instances(self, *instance_ids: str) -> SimpleResp:
        """Queue a reboot of the given instances.

        Requests to reboot terminated instances are ignored by EC2.
        """
        params = make_params("RebootInstances")
        add_params_list(params, "InstanceId", instance_ids)
        return self._query.execute(params, SimpleResp)

    def describe_instances(
        self,
        instance_ids: Iterable[str] | None = None,
        filters: Filter | None = None,
    ) -> InstancesResp:
        """Describe instances, optionally limited to ids and/or filters.

        Each instance's owner_id is taken from its reservation.
        """
        params = make_params("DescribeInstances")
        add_params_list(params, "InstanceId", instance_ids)
        add_filter_params(params, filters)

        resp = self._query.execute(params, InstancesResp)
        for reservation in resp.reservations:
            for instance in reservation.instances:
                instance.owner_id = reservation.owner_id
        return resp

    # -------------------------------------------------------------------------
    # Addresses
    # -------------------------------------------------------------------------

    def describe_addresses(
        self,
        instance_ids: Iterable[str] | None = None,
        filters: Filter | None = None,
    ) -> AddressesResp:
        params = make_params("DescribeAddresses")
        add_params_list(params, "InstanceId", instance_ids)
        add_filter_params(params, filters)
        return self._query.execute(params, AddressesResp)

    # -------------------------------------------------------------------------
    # Images and snapshots
    # -------------------------------------------------------------------------

    def describe_images(
        self,
        image_ids: Iterable[str] | None = None,
        filters: Filter | None = None,
    ) -> ImagesResp:
        """Describe images.

        Without ids or filters this returns every public image, which is a
        very large response.
        """
        params = make_params("DescribeImages")
        add_params_list(params, "ImageId", image_ids)
        add_filter_params(params, filters)
        return self._query.execute(params, ImagesResp)

    def create_snapshot(self, volume_id: str, description: str = "") -> CreateSnapshotResp:
        params = make_params("CreateSnapshot")
        params["VolumeId"] = volume_id
        if description:
            params["Description"] = description
        return self._query.execute(params, CreateSnapshotResp)

    def delete_snapshots(self, snapshot_ids: Iterable[str]) -> SimpleResp:
        """Delete the given snapshots.

        Snapshots are incremental, but EC2 keeps whatever blocks later
        snapshots still need, so any snapshot may be deleted.
        """
        params = make_params("DeleteSnapshot")
        add_params_list(params, "SnapshotId", snapshot_ids)
        return self._query.execute(params, SimpleResp)

    def describe_snapshots(
        self,
        snapshot_ids: Iterable[str] | None = None,
        filters: Filter | None = None,
    ) -> SnapshotsResp:
        params = make_params("DescribeSnapshots")
        add_params_list(params, "SnapshotId", snapshot_ids)
        add_filter_params(params, filters)
        return self._query.execute(params, SnapshotsResp)

    # -------------------------------------------------------------------------
    # Security groups
    # -------------------------------------------------------------------------

    def create_security_group(self, name: str, description: str) -> CreateSecurityGroupResp:
        params = make_params("CreateSecurityGroup")
        params["GroupName"] = name
        params["GroupDescription"] = description

        resp = self._query.execute(params, CreateSecurityGroupResp)
        resp.name = name
        return resp

    def describe_security_groups(
        self,
        groups: Iterable[SecurityGroup] | None = None,
        filters: Filter | None = None,
    ) -> SecurityGroupsResp:
        params = make_params("DescribeSecurityGroups")
        add_group_refs(params, list(groups or ()), "GroupId", "GroupName")
        add_filter_params(params, filters)
        return self._query.execute(params, SecurityGroupsResp)

    def delete_security_group(self, group: SecurityGroup) -> SimpleResp:
        params = make_params("DeleteSecurityGroup")
        add_group_ref(params, group)
        return self._query.execute(params, SimpleResp)

    def authorize_security_group(
        self,
        group: SecurityGroup,
        perms: Iterable[IPPerm],
    ) -> SimpleResp:
        """Allow traffic matching *perms* into instances of *group*."""
        return self._auth_or_revoke("AuthorizeSecurityGroupIngress", group, perms)

    def revoke_security_group(
        self,
        group: SecurityGroup,
        perms: Iterable[IPPerm],
    ) -> SimpleResp:
        """Remove ingress permissions from *group*."""
        return self._auth_or_revoke("RevokeSecurityGroupIngress", group, perms)

    def _auth_or_revoke(
        self,
        action: str,
        group: SecurityGroup,
        perms: Iterable[IPPerm],
    ) -> SimpleResp:
        params = make_params(action)
        add_group_ref(params, group)
        add_ip_perms(params, list(perms))
        return self._query.execute(params, SimpleResp)

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    def create_tags(self, resource_ids: Iterable[str], tags: Iterable[Tag]) -> SimpleResp:
        """Add or overwrite tags on the given resources."""
        params = make_params("CreateTags")
        add_params_list(params, "ResourceId", resource_ids)
        add_tags(params, list(tags))
        return self._query.execute(params, SimpleResp)
