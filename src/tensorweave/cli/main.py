"""Command line interface for tensorweave.

Commands:
    tensorweave transpile GRAPH   Generate PyTorch source from a graph file
    tensorweave validate GRAPH    Check a graph without generating code
    tensorweave plugins list      List available plugins
    tensorweave plugins describe  Show one plugin's settings and handles
"""

import json
import re
import sys
from pathlib import Path
from typing import Any, Optional

import click

from tensorweave.core.exceptions import GraphCycleError, GraphValidationError, NodeError
from tensorweave.core.graph import parse_graph
from tensorweave.core.settings import SettingsManager, TensorweaveSettings
from tensorweave.registry import PluginRegistry
from tensorweave.transpiler import TranspileResult, resolve_paths, transpile

from .logging_config import configure_logging


def _load_settings(plugins_dir: Optional[str], remote_url: Optional[str]) -> TensorweaveSettings:
    settings = SettingsManager().load()
    if plugins_dir:
        settings.registry.plugins_dir = plugins_dir
    if remote_url:
        settings.registry.remote_url = remote_url
    return settings


def _read_graph(path: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON in {path}: {e}", err=True)
        sys.exit(1)


def _artifact_filename(artifact_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", artifact_id) + ".py"


def _report_failures(result: TranspileResult) -> None:
    for artifact_id, failure in result.failures.items():
        click.echo(f"Error: artifact '{artifact_id}' failed ({failure.kind})", err=True)
        if failure.node_id:
            click.echo(f"  Node: {failure.node_id}", err=True)
        if failure.plugin_type:
            click.echo(f"  Plugin: {failure.plugin_type}", err=True)
        click.echo(f"  Reason: {failure.reason}", err=True)


@click.group()
@click.version_option(package_name="tensorweave")
@click.option("-v", "--verbose", is_flag=True, help="Show INFO logs")
def cli(verbose: bool) -> None:
    """Transpile visual ML workflow graphs into PyTorch code."""
    configure_logging(verbose)


@cli.command(name="transpile")
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--out-dir", type=click.Path(file_okay=False), help="Write one <artifact>.py per terminal node")
@click.option("--plugins-dir", type=click.Path(file_okay=False), help="Local plugin directory")
@click.option("--remote-url", help="Base URL of a remote plugin store")
@click.option("--no-format", is_flag=True, help="Skip the external formatter")
@click.option("--json", "output_json", is_flag=True, help="Output the full result as JSON")
def transpile_command(
    graph_file: str,
    out_dir: Optional[str],
    plugins_dir: Optional[str],
    remote_url: Optional[str],
    no_format: bool,
    output_json: bool,
) -> None:
    """Generate source code for every terminal node of GRAPH_FILE."""
    settings = _load_settings(plugins_dir, remote_url)
    registry = PluginRegistry.from_settings(settings)

    try:
        result = transpile(
            _read_graph(graph_file), registry, settings=settings, format_code=False if no_format else None
        )
    except (GraphValidationError, GraphCycleError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif out_dir:
        target = Path(out_dir)
        target.mkdir(parents=True, exist_ok=True)
        for artifact_id, artifact in result.artifacts.items():
            path = target / _artifact_filename(artifact_id)
            path.write_text(artifact.code, encoding="utf-8")
            click.echo(f"Wrote {path}")
    else:
        for artifact_id, artifact in result.artifacts.items():
            click.echo(f"# --- {artifact_id} ---")
            click.echo(artifact.code)

    if not result.success:
        _report_failures(result)
        sys.exit(1)


@cli.command(name="validate")
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--plugins-dir", type=click.Path(file_okay=False), help="Local plugin directory")
@click.option("--remote-url", help="Base URL of a remote plugin store")
def validate_command(graph_file: str, plugins_dir: Optional[str], remote_url: Optional[str]) -> None:
    """Check graph structure, plugin availability and node settings."""
    settings = _load_settings(plugins_dir, remote_url)
    registry = PluginRegistry.from_settings(settings)

    try:
        graph = parse_graph(_read_graph(graph_file))
        paths = resolve_paths(graph)
    except (GraphValidationError, GraphCycleError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    problems: list[str] = []
    for node in graph.nodes:
        try:
            plugin = registry.resolve(node.type)
        except NodeError as e:
            problems.append(f"{node.id}: {e.reason}")
            continue
        validation = plugin.validate_settings(node.settings)
        problems.extend(f"{node.id}: {error.message}" for error in validation.errors)

    if problems:
        click.echo(f"Graph has {len(problems)} problem(s):", err=True)
        for problem in problems:
            click.echo(f"  - {problem}", err=True)
        sys.exit(1)

    click.echo(f"Graph is valid: {len(graph.nodes)} node(s), {len(paths)} artifact(s)")


@cli.group(name="plugins")
def plugins() -> None:
    """Inspect available plugins."""
    pass


@plugins.command(name="list")
@click.option("--plugins-dir", type=click.Path(file_okay=False), help="Local plugin directory")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def list_plugins(plugins_dir: Optional[str], output_json: bool) -> None:
    """List plugins from the local directory and the built-ins."""
    registry = PluginRegistry.from_settings(_load_settings(plugins_dir, None))
    try:
        definitions = registry.list_plugins()
    except NodeError as e:
        click.echo(f"Error: Failed to list plugins: {e}", err=True)
        sys.exit(1)

    if output_json:
        click.echo(json.dumps([d.to_dict() for d in definitions], indent=2))
        return

    for definition in definitions:
        kind = "structural" if definition.structural else definition.node_type
        click.echo(f"  {definition.slug:22} {definition.version:8} {kind:14} {definition.description}")


@plugins.command(name="describe")
@click.argument("plugin_type")
@click.option("--plugins-dir", type=click.Path(file_okay=False), help="Local plugin directory")
@click.option("--remote-url", help="Base URL of a remote plugin store")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def describe_plugin(plugin_type: str, plugins_dir: Optional[str], remote_url: Optional[str], output_json: bool) -> None:
    """Show settings fields, handles and imports of PLUGIN_TYPE."""
    registry = PluginRegistry.from_settings(_load_settings(plugins_dir, remote_url))
    try:
        definition = registry.resolve(plugin_type).definition
    except NodeError as e:
        click.echo(f"Error: {e.reason}", err=True)
        sys.exit(1)

    if output_json:
        click.echo(json.dumps(definition.to_dict(), indent=2))
        return

    click.echo(f"Plugin: {definition.slug} ({definition.version})")
    click.echo(f"Name: {definition.name}")
    click.echo(f"Type: {definition.node_type}{' (structural)' if definition.structural else ''}")
    if definition.description:
        click.echo(f"Description: {definition.description}")

    click.echo("\nSettings:")
    for settings_field in definition.settings_fields:
        flags = " (required)" if settings_field.required else ""
        default = f" = {settings_field.default!r}" if settings_field.default is not None else ""
        click.echo(f"  - {settings_field.key}: {settings_field.data_type}{default}{flags}")

    click.echo(f"\nInputs: {', '.join(h.id for h in definition.input_handles) or '-'}")
    click.echo(f"Outputs: {', '.join(h.id for h in definition.output_handles) or '-'}")
    if definition.imports:
        click.echo("Imports:")
        for spec in definition.imports:
            click.echo(f"  - {spec.path}{': ' + ', '.join(spec.items) if spec.items else ''}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
