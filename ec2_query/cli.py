"""CLI entry point for ec2-query.

Handles argument parsing and dispatches one EC2 action per invocation. The
decoded response is printed to stdout as JSON.
"""

from __future__ import annotations

import argparse
import logging
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import httpx
from pydantic import BaseModel, ValidationError

from ec2_query.client import EC2
from ec2_query.config_loader import ConfigError, load_client_config
from ec2_query.filters import Filter
from ec2_query.models import ClientConfig, SecurityGroup
from ec2_query.query import EC2Error

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

DESCRIBE_COMMANDS = (
    "describe-instances",
    "describe-images",
    "describe-snapshots",
    "describe-addresses",
    "describe-security-groups",
)
INSTANCE_COMMANDS = (
    "start-instances",
    "stop-instances",
    "reboot-instances",
    "terminate-instances",
)


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def parse_filter(value: str) -> tuple[str, list[str]]:
    """Parse NAME=VALUE[,VALUE...] format.

    Returns:
        Tuple of (filter_name, values).

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if "=" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid format '{value}'. Expected NAME=VALUE[,VALUE...] "
            f"(e.g., 'instance-state-name=running,pending')"
        )
    name, _, raw_values = value.partition("=")
    if not name:
        raise argparse.ArgumentTypeError(f"Invalid format '{value}'. Filter name cannot be empty.")
    values = [v for v in raw_values.split(",") if v]
    if not values:
        raise argparse.ArgumentTypeError(f"Invalid format '{value}'. At least one value is required.")
    return name, values


@dataclass
class CommonArgs:
    """Options shared by every subcommand."""

    command: str
    config: Path | None
    region: str | None
    endpoint: str | None
    debug: bool
    timeout: float | None


@dataclass
class DescribeArgs(CommonArgs):
    """Parsed arguments for describe-* commands."""

    ids: list[str] = field(default_factory=list)
    filters: list[tuple[str, list[str]]] = field(default_factory=list)
    group_ids: list[str] = field(default_factory=list)
    group_names: list[str] = field(default_factory=list)


@dataclass
class InstanceActionArgs(CommonArgs):
    """Parsed arguments for commands acting on instance ids."""

    instance_ids: list[str] = field(default_factory=list)


def _common_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to client configuration file (YAML)",
    )
    common.add_argument(
        "--region",
        type=str,
        default=None,
        help="Region name (overrides config; default us-east-1)",
    )
    common.add_argument(
        "--endpoint",
        type=str,
        default=None,
        help="EC2 endpoint URL (overrides the region's endpoint)",
    )
    common.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help="Transport timeout in seconds (overrides config; default 30)",
    )
    common.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Log every request URL and raw response to stderr",
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per supported action."""
    parser = argparse.ArgumentParser(
        prog="ec2-query",
        description="Call the EC2 Query API and print the decoded response as JSON.",
    )
    common = _common_parser()
    subparsers = parser.add_subparsers(dest="command", required=True, help="EC2 action")

    id_options = {
        "describe-instances": ("--instance-id", "Limit to an instance id"),
        "describe-images": ("--image-id", "Limit to an image id"),
        "describe-snapshots": ("--snapshot-id", "Limit to a snapshot id"),
        "describe-addresses": ("--instance-id", "Limit to addresses of an instance"),
    }
    for command in DESCRIBE_COMMANDS:
        sub = subparsers.add_parser(command, parents=[common], help=f"Run {command}")
        if command in id_options:
            flag, help_text = id_options[command]
            sub.add_argument(
                flag,
                dest="ids",
                action="append",
                default=[],
                metavar="ID",
                help=f"{help_text} (can be repeated)",
            )
        else:
            sub.add_argument(
                "--group-id",
                dest="group_ids",
                action="append",
                default=[],
                metavar="ID",
                help="Limit to a security group id (can be repeated)",
            )
            sub.add_argument(
                "--group-name",
                dest="group_names",
                action="append",
                default=[],
                metavar="NAME",
                help="Limit to a security group name (can be repeated)",
            )
        sub.add_argument(
            "--filter",
            dest="filters",
            type=parse_filter,
            action="append",
            default=[],
            metavar="NAME=VALUE[,VALUE...]",
            help="Server-side filter (can be repeated)",
        )

    for command in INSTANCE_COMMANDS:
        sub = subparsers.add_parser(command, parents=[common], help=f"Run {command}")
        sub.add_argument("instance_ids", nargs="+", metavar="INSTANCE_ID")

    return parser


def parse_args(args: list[str] | None = None) -> DescribeArgs | InstanceActionArgs:
    """Parse command-line arguments and return typed args dataclass.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    common = {
        "command": namespace.command,
        "config": namespace.config,
        "region": namespace.region,
        "endpoint": namespace.endpoint,
        "debug": namespace.debug,
        "timeout": namespace.timeout,
    }
    if namespace.command in DESCRIBE_COMMANDS:
        return DescribeArgs(
            **common,
            ids=getattr(namespace, "ids", []),
            filters=namespace.filters,
            group_ids=getattr(namespace, "group_ids", []),
            group_names=getattr(namespace, "group_names", []),
        )
    return InstanceActionArgs(**common, instance_ids=namespace.instance_ids)


def build_client_config(args: CommonArgs) -> ClientConfig:
    """Load the config file (if any) and apply command-line overrides."""
    config = load_client_config(args.config) if args.config else ClientConfig()

    overrides: dict[str, object] = {}
    if args.region:
        overrides["region"] = args.region
    if args.endpoint:
        overrides["endpoint"] = args.endpoint
    if args.timeout is not None:
        overrides["timeout"] = args.timeout
    if args.debug:
        overrides["debug"] = True
    return config.model_copy(update=overrides)


def build_filter(filters: list[tuple[str, list[str]]]) -> Filter | None:
    if not filters:
        return None
    result = Filter()
    for name, values in filters:
        result.add(name, *values)
    return result


def _describe(client: EC2, args: DescribeArgs) -> BaseModel:
    filters = build_filter(args.filters)
    if args.command == "describe-instances":
        return client.describe_instances(args.ids, filters)
    elif args.command == "describe-images":
        return client.describe_images(args.ids, filters)
    elif args.command == "describe-snapshots":
        return client.describe_snapshots(args.ids, filters)
    elif args.command == "describe-addresses":
        return client.describe_addresses(args.ids, filters)
    groups = [SecurityGroup(id=group_id) for group_id in args.group_ids]
    groups.extend(SecurityGroup(name=name) for name in args.group_names)
    return client.describe_security_groups(groups, filters)


def _instance_action(client: EC2, args: InstanceActionArgs) -> BaseModel:
    actions: dict[str, Callable[..., BaseModel]] = {
        "start-instances": client.start_instances,
        "stop-instances": client.stop_instances,
        "reboot-instances": client.reboot_instances,
        "terminate-instances": lambda *ids: client.terminate_instances(ids),
    }
    return actions[args.command](*args.instance_ids)


def dispatch(args: DescribeArgs | InstanceActionArgs) -> int:
    """Run one parsed command. Returns the process exit code."""
    if args.debug:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format=LOG_FORMAT)

    try:
        config = build_client_config(args)
        client = EC2.from_config(config)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    with client:
        try:
            if isinstance(args, DescribeArgs):
                resp = _describe(client, args)
            else:
                resp = _instance_action(client, args)
        except EC2Error as e:
            print(f"EC2 error ({e.status_code}): {e}", file=sys.stderr)
            if e.request_id:
                print(f"Request id: {e.request_id}", file=sys.stderr)
            return 1
        except httpx.HTTPError as e:
            print(f"Request failed: {e}", file=sys.stderr)
            return 1
        except (ET.ParseError, ValidationError) as e:
            print(f"Invalid response from {client.region.ec2_endpoint}: {e}", file=sys.stderr)
            return 1

    print(resp.model_dump_json(indent=2))
    return 0


def main() -> int:
    """Main entry point."""
    try:
        return dispatch(parse_args())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
