"""CLI interface for nodessh"""

import dataclasses
import logging
import sys
from typing import List, Optional

import click

from nodessh.core.config import Config, SSHSettings
from nodessh.core.env import EnvManager
from nodessh.core.executor import ExecutionResult, execute
from nodessh.core.hosts import node_ssh_host, node_ssh_hosts
from nodessh.core.report import log_ssh_result
from nodessh.errors import IncompleteAddressError, NodeSSHError
from nodessh.transport.base import join_host_port, split_host_port

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode with verbose output",
)
@click.version_option(package_name="nodessh")
@click.pass_context
def cli(ctx, debug):
    """nodessh - run commands on cluster nodes over SSH

    Connects directly or through a bastion host and reports stdout, stderr
    and exit code for every node.
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)


def _load(config: Optional[str], env_file: tuple):
    """Return (Config or None, SSHSettings) for the given options"""
    env_files = list(env_file) if env_file else None
    if config:
        cfg = Config(config, env_files=env_files)
        return cfg, cfg.ssh_settings

    env = EnvManager()
    env.load_files(env_files or [])
    return None, SSHSettings.from_env(env)


def _targets(cfg: Optional[Config], settings: SSHSettings, host: Optional[str],
             node: Optional[str], all_nodes: bool) -> List[str]:
    if host:
        name, port = split_host_port(host, default_port=settings.port)
        return [join_host_port(name, port)]

    if cfg is None:
        raise click.UsageError("--node and --all need a configuration file (-c)")

    if node:
        for candidate in cfg.nodes:
            if candidate.name == node:
                return [node_ssh_host(candidate, settings.port)]
        raise click.UsageError(f"Node not found in configuration: {node}")

    if all_nodes:
        try:
            return node_ssh_hosts(cfg.nodes, settings.port)
        except IncompleteAddressError as e:
            click.echo(f"⚠️  {e}; continuing with {len(e.hosts)} host(s)")
            return e.hosts

    raise click.UsageError("One of --host, --node or --all is required")


@cli.command()
@click.option("-c", "--config", type=click.Path(exists=True), help="Path to configuration YAML file")
@click.option(
    "-e",
    "--env-file",
    multiple=True,
    type=click.Path(exists=True),
    help="Load environment variables from file (can be used multiple times)",
)
@click.option("--host", help="Target host[:port]")
@click.option("--node", help="Target node name from the configuration")
@click.option("--all", "all_nodes", is_flag=True, help="Run on every schedulable node in the configuration")
@click.option("--provider", help="Provider used to pick the SSH key (overrides configuration)")
@click.option("--bastion", help="Bastion host[:port] to tunnel through")
@click.option("--user", help="Remote user")
@click.option("--key-path", type=click.Path(), help="Private key file (overrides provider lookup)")
@click.option("--timeout", type=float, help="Give up on each host after this many seconds")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.argument("command", nargs=-1, required=True)
@click.pass_context
def run(ctx, config: Optional[str], env_file: tuple, host: Optional[str], node: Optional[str],
        all_nodes: bool, provider: Optional[str], bastion: Optional[str], user: Optional[str],
        key_path: Optional[str], timeout: Optional[float], verbose: bool, command: tuple):
    """Run a command on one or more nodes

    Examples:
        nodessh run --host 10.0.0.5 --provider aws -- uptime
        nodessh run -c cluster.yaml --all -- systemctl is-active kubelet
        nodessh run -c cluster.yaml --node node-1 --bastion jump.example.com -- df -h
    """
    if verbose or ctx.obj.get("debug"):
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        cfg, settings = _load(config, env_file)
        changes = {}
        if bastion:
            changes["bastion"] = bastion
        if user:
            changes["user"] = user
        if key_path:
            changes["key_path"] = key_path
        settings = dataclasses.replace(settings, **changes)
        provider = provider or (cfg.provider if cfg else "local")

        hosts = _targets(cfg, settings, host, node, all_nodes)
    except click.UsageError:
        raise
    except Exception as e:
        click.echo(f"✗ Error: {e}")
        sys.exit(1)

    cmdline = " ".join(command)
    failed = 0
    for target in hosts:
        try:
            result = execute(cmdline, target, provider, settings, deadline=timeout)
        except NodeSSHError as e:
            result = e.result or ExecutionResult(host=target, command=cmdline)
            click.echo(f"✗ {target}: {e}")
            failed += 1
        else:
            if result.exit_code != 0:
                failed += 1
        log_ssh_result(result, sink=click.echo)

    if failed:
        click.echo(f"\n✗ {failed} of {len(hosts)} host(s) failed")
        sys.exit(1)
    click.echo(f"\n✓ Command succeeded on {len(hosts)} host(s)")
    sys.exit(0)


@cli.command()
@click.option("-c", "--config", required=True, type=click.Path(exists=True),
              help="Path to configuration YAML file")
@click.option(
    "-e",
    "--env-file",
    multiple=True,
    type=click.Path(exists=True),
    help="Load environment variables from file (can be used multiple times)",
)
def hosts(config: str, env_file: tuple):
    """List SSH-able host:port for every schedulable node

    Examples:
        nodessh hosts -c cluster.yaml
    """
    try:
        cfg, settings = _load(config, env_file)
        found = node_ssh_hosts(cfg.nodes, settings.port)
    except IncompleteAddressError as e:
        for host in e.hosts:
            click.echo(host)
        click.echo(f"✗ Error: {e}")
        sys.exit(1)
    except Exception as e:
        click.echo(f"✗ Error: {e}")
        sys.exit(1)

    for host in found:
        click.echo(host)
    sys.exit(0)


@cli.command()
@click.option("-c", "--config", required=True, type=click.Path(exists=True),
              help="Path to configuration YAML file")
@click.option(
    "-e",
    "--env-file",
    multiple=True,
    type=click.Path(exists=True),
    help="Load environment variables from file (can be used multiple times)",
)
def validate(config: str, env_file: tuple):
    """Validate configuration file

    Examples:
        nodessh validate -c cluster.yaml
    """
    try:
        cfg, settings = _load(config, env_file)

        if not cfg.validate():
            click.echo("✗ Configuration validation failed")
            sys.exit(1)

        click.echo("✓ Configuration is valid")
        click.echo(f"  Provider: {cfg.provider}")
        click.echo(f"  Nodes: {len(cfg.nodes)}")
        if settings.bastion:
            click.echo(f"  Bastion: {settings.bastion}")

        sys.exit(0)

    except Exception as e:
        click.echo(f"✗ Error: {e}")
        sys.exit(1)


def main():
    """Entry point for CLI"""
    cli()


if __name__ == "__main__":
    main()
