#!/usr/bin/env python3
"""
Calico Migration Tool - Main entry point

This tool reads the configuration of an existing, manifest-based Calico install
and converts it into an equivalent installation config, refusing any setting it
cannot carry over.
"""

# Standard library imports
import json
import sys

# Third-party library imports
import click
import logging
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

# Local module imports
from calico_convert.errors import FetchError, IncompatibleClusterError, MigrationError
from calico_convert.k8s_utils import KubernetesObjectFetcher, ManifestObjectFetcher, get_kubernetes_client
from calico_convert.parser import extract_config
from calico_convert.platform import PLATFORMS
from calico_convert.report import write_report

# Set up logging configuration with Rich formatting
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, console=Console(stderr=True))]
)
log = logging.getLogger("calico-migration")
err_console = Console(stderr=True)


@click.group()
@click.option('--debug', is_flag=True, help='Enable debug logging')
def cli(debug):
    """Calico Migration Tool - Convert an existing Calico install"""
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        log.debug("Debug logging enabled")


@cli.command()
@click.option('--manifest', type=click.Path(exists=True, dir_okay=False),
              help='Read objects from a YAML manifest instead of the cluster')
@click.option('--kubeconfig', envvar='KUBECONFIG', help='Path to the kubeconfig file')
@click.option('--context', help='Kubeconfig context to use')
@click.option('--namespace', default='kube-system', show_default=True,
              help='Namespace of the calico-node DaemonSet')
@click.option('--platform', type=click.Choice(['none'] + sorted(PLATFORMS)), default='none',
              show_default=True, help='Platform to check IP pools against')
@click.option('--output', type=click.Choice(['json', 'yaml']), default='json', show_default=True,
              help='Output format')
@click.option('--output-file', type=click.Path(dir_okay=False), help='Write the config to a file')
@click.option('--report', type=click.Path(dir_okay=False), help='Write a Markdown conversion report')
def convert(manifest, kubeconfig, context, namespace, platform, output, output_file, report):
    """Extract the config of an existing Calico install"""
    if manifest:
        fetcher = ManifestObjectFetcher.from_file(manifest)
        source = manifest
    else:
        try:
            fetcher = KubernetesObjectFetcher(get_kubernetes_client(kubeconfig, context))
        except RuntimeError as e:
            err_console.print(f"[bold red]Error: {escape(str(e))}[/bold red]")
            sys.exit(1)
        source = f"context {context}" if context else "current context"

    err_console.print(f"[bold blue]Reading existing Calico install from {source}...[/bold blue]")
    try:
        cfg = extract_config(fetcher, platform=None if platform == 'none' else platform, namespace=namespace)
    except IncompatibleClusterError as e:
        err_console.print(f"[bold red]Existing install cannot be converted: {escape(e.reason)}[/bold red]")
        sys.exit(1)
    except FetchError as e:
        err_console.print(f"[bold red]Error reading cluster state (safe to retry): {escape(str(e))}[/bold red]")
        sys.exit(1)
    except MigrationError as e:
        err_console.print(f"[bold red]Error during conversion: {escape(str(e))}[/bold red]")
        sys.exit(1)

    if cfg is None:
        err_console.print("[bold yellow]No existing Calico install found, nothing to convert.[/bold yellow]")
        return

    data = cfg.to_dict()
    if output == 'yaml':
        text = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    else:
        text = json.dumps(data, indent=2)

    if output_file:
        with open(output_file, 'w') as f:
            f.write(text)
        err_console.print(f"[bold green]Config written to {output_file}[/bold green]")
    else:
        click.echo(text)

    if report:
        write_report(cfg, source, report)
        err_console.print(f"Conversion report: [bold]{report}[/bold]")


# Entry point for the script - only execute if run directly (not imported)
if __name__ == '__main__':
    cli()
