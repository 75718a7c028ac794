#!/usr/bin/env python3
"""
Synth Publish CLI

Command-line interface for deployment maintenance of the synth registry.

Usage:
    synth-publish <command> [subcommand] [options]

Commands:
    remove-synths   Remove a number of synths from the system
    owner-actions   Inspect actions queued for the registry owner
    config          Configuration management

Exit status is 0 on success, on an empty synth list and when the operator
declines the confirmation prompt; otherwise the failing error's exit code.

Copyright (c) 2026 Synthetix Publish. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, TextIO

import yaml

from publish.synths import __version__
from publish.synths.config import (
    NETWORKS,
    ConfigError,
    Connections,
    ensure_network,
    get_config_manager,
    load_connections,
)
from publish.synths.errors import RemovalError
from publish.synths.observability import (
    AuditLogger,
    PublishLayer,
    configure_logging,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)

logger = get_logger("cli", PublishLayer.CLI)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.TEXT) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False)
    return _format_text(data)


def _format_text(data: Any) -> str:
    if isinstance(data, dict):
        lines = []
        for k, v in data.items():
            if isinstance(v, (list, dict)):
                v = json.dumps(v, default=str)
            lines.append(f"{k}: {v}")
        return "\n".join(lines)
    return str(data)


def confirm_action(
    prompt: str,
    input_fn: Callable[[str], str] = input,
) -> bool:
    """Ask the operator a y/n question; anything but yes declines."""
    try:
        answer = input_fn(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def removal_prompt(network: str, synths: Sequence[str]) -> str:
    listing = "\n- ".join(synths)
    return (
        f"WARNING: This action will remove the following synths from the Synthetix "
        f"contract on {network}:\n- {listing}\nDo you want to continue? (y/n) "
    )


def _parse_gas_price(value: str) -> Decimal:
    try:
        price = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid gas price: {value!r}")
    if price <= 0:
        raise argparse.ArgumentTypeError("gas price must be positive")
    return price


def _parse_gas_limit(value: str) -> int:
    try:
        limit = int(float(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid gas limit: {value!r}")
    if limit <= 0:
        raise argparse.ArgumentTypeError("gas limit must be positive")
    return limit


class PublishCLI:
    """Main CLI application."""

    def __init__(
        self,
        chain_factory: Optional[Callable[[Connections], Any]] = None,
        input_fn: Callable[[str], str] = input,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ):
        self._chain_factory = chain_factory or self._web3_client
        self._input_fn = input_fn
        self._stdout = stdout
        self._stderr = stderr

        self.parser = argparse.ArgumentParser(
            prog="synth-publish",
            description="Synth registry deployment maintenance",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"synth-publish {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=[f.value for f in OutputFormat],
            default="text",
            help="Output format (default: text)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Additional YAML configuration file",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    @property
    def out(self) -> TextIO:
        return self._stdout or sys.stdout

    @property
    def err(self) -> TextIO:
        return self._stderr or sys.stderr

    def _register_commands(self) -> None:
        self._register_remove_synths_command()
        self._register_owner_actions_commands()
        self._register_config_commands()

    def _register_remove_synths_command(self) -> None:
        remove = self.subparsers.add_parser(
            "remove-synths", help="Remove a number of synths from the system"
        )
        remove.add_argument(
            "--deployment-path", "-d",
            help="Folder holding config.json, deployment.json and synths.json per network",
        )
        remove.add_argument("--gas-price", "-g", type=_parse_gas_price, help="Gas price in GWEI")
        remove.add_argument("--gas-limit", "-l", type=_parse_gas_limit, help="Gas limit")
        remove.add_argument(
            "--network", "-n",
            type=str.lower,
            help=f"The network to run off ({', '.join(NETWORKS)})",
        )
        remove.add_argument(
            "--synths-to-remove", "-s",
            action="append",
            default=[],
            metavar="SYNTH",
            help="A synth to remove (repeatable)",
        )

    def _register_owner_actions_commands(self) -> None:
        actions = self.subparsers.add_parser(
            "owner-actions", help="Inspect actions queued for the registry owner"
        )
        actions_sub = actions.add_subparsers(dest="subcommand")

        list_cmd = actions_sub.add_parser("list", help="List owner actions")
        list_cmd.add_argument("--deployment-path", "-d", help="Deployment folder")
        list_cmd.add_argument("--network", "-n", type=str.lower, help="Network")
        list_cmd.add_argument("--all", action="store_true", help="Include completed actions")

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., gas.gas_limit)")

        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help(self.out)
            return 0

        set_correlation_id(generate_correlation_id())

        try:
            self._load_config(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None and not parsed.quiet:
                print(format_output(result, fmt), file=self.out)

            return 0

        except RemovalError as e:
            if not parsed.quiet:
                print(f"Error: {e.message}", file=self.err)
                if e.committed:
                    done = ", ".join(getattr(o, "identifier", str(o)) for o in e.committed)
                    print(f"Already removed in this run: {done}", file=self.err)
            return e.exit_code

        except (CLIError, ConfigError) as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=self.err)
            return getattr(e, "exit_code", 1)

        except Exception as e:
            logger.critical("Unexpected failure", error_code="unexpected", exc_info=True)
            if not parsed.quiet:
                print(f"Error: {e}", file=self.err)
            return 1

    def _load_config(self, args: argparse.Namespace) -> None:
        mgr = get_config_manager()
        mgr.load_defaults()
        if args.config:
            mgr.load_from_file(args.config)
        configure_logging(
            level=mgr.get("observability.log_level"),
            fmt=mgr.get("observability.log_format"),
            stream=self.err,
        )

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command.replace("-", "_")
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}")

        return handler(args)

    @staticmethod
    def _web3_client(connections: Connections) -> Any:
        from publish.synths.chain import Web3ChainClient
        return Web3ChainClient(
            provider_url=connections.provider_url,
            private_key=connections.private_key,
            receipt_timeout=get_config_manager().get("network.receipt_timeout_seconds"),
        )

    # Remove synths
    def _handle_remove_synths(self, args: argparse.Namespace) -> Any:
        from publish.synths.chain import GasPolicy
        from publish.synths.manifest import DeploymentManifest
        from publish.synths.owner_actions import PendingActionLog
        from publish.synths.removal import RemovalCoordinator

        mgr = get_config_manager()
        network = ensure_network(args.network or mgr.get("network.default_network"))
        deployment_path = args.deployment_path or mgr.get("network.deployment_path")

        manifest = DeploymentManifest.load(deployment_path, network)

        if not args.synths_to_remove:
            return {"status": "noop", "message": "No synths provided. Please use --synths-to-remove option"}

        connections = load_connections(network, mgr.config)
        chain = self._chain_factory(connections)
        signer = chain.account
        if signer is None:
            raise CLIError("No signing account available")

        gas_policy = GasPolicy(
            gas_price_gwei=args.gas_price if args.gas_price is not None else mgr.get("gas.gas_price_gwei"),
            gas_limit=args.gas_limit if args.gas_limit is not None else mgr.get("gas.gas_limit"),
        )
        logger.info(f"Using account with public key {signer.address}")
        logger.info(f"Using gas of {gas_policy.gas_price_gwei} GWEI with a max of {gas_policy.gas_limit}")

        actions = PendingActionLog.load(
            manifest.owner_actions_file,
            explorer_link_prefix=connections.explorer_link_prefix,
        )
        coordinator = RemovalCoordinator(
            manifest=manifest,
            chain=chain,
            actions=actions,
            confirm=lambda synths: confirm_action(removal_prompt(network, synths), self._input_fn),
            protected=mgr.get("removal.protected_synths"),
            audit=AuditLogger(get_logger("audit", PublishLayer.REMOVAL), network=network),
        )

        result = coordinator.remove_components(args.synths_to_remove, signer, gas_policy)
        report = result.to_dict()
        if result.removed:
            registry = manifest.registry.get("Synthetix", {}).get("address", "")
            report["verify"] = f"{connections.explorer_link_prefix}/address/{registry}#readContract"
        return report

    # Owner action handlers
    def _handle_owner_actions_list(self, args: argparse.Namespace) -> Any:
        from publish.synths.manifest import OWNER_ACTIONS_FILENAME
        from publish.synths.owner_actions import PendingActionLog

        mgr = get_config_manager()
        network = ensure_network(args.network or mgr.get("network.default_network"))
        deployment_path = args.deployment_path or mgr.get("network.deployment_path")

        log = PendingActionLog.load(Path(deployment_path) / network / OWNER_ACTIONS_FILENAME)
        entries = log.all() if args.all else log.pending()
        return {
            "network": network,
            "count": len(entries),
            "actions": [{"key": a.key, **a.to_dict()} for a in entries],
        }

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        value = mgr.get(args.path)
        if hasattr(value, "__dataclass_fields__"):
            raise CLIError(f"{args.path} is a section; use 'config show'")
        if getattr(mgr.lookup(args.path), "secret", False):
            value = "***" if value else ""
        return {"path": args.path, "value": str(value) if isinstance(value, Decimal) else value}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        if errors:
            raise CLIError("Invalid configuration: " + "; ".join(errors))
        return {"valid": True, "errors": []}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = PublishCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
