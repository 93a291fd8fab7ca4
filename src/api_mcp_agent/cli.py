"""CLI entry point for api-mcp-agent."""

import functools
import sys
from pathlib import Path

import click

from api_mcp_agent.config import get_settings
from api_mcp_agent.errors import (
    ConfigurationError,
    GenerationFailed,
    PipelineFailed,
    SpecError,
)
from api_mcp_agent.generator.assembler import PackageAssembler, create_zip, write_package
from api_mcp_agent.generator.orchestrator import CodeGenerator
from api_mcp_agent.llm import LlmClient
from api_mcp_agent.logging import configure_logging
from api_mcp_agent.parser.openapi import parse_openapi_file
from api_mcp_agent.transform.normalizer import api_summary, endpoint_summary, normalize

EXIT_SPEC_ERROR = 2
EXIT_CONFIG_ERROR = 3
EXIT_GENERATION_ERROR = 4


def _handle_errors(func):
    """Turn domain errors into a message on stderr and a distinct exit status."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SpecError as e:
            click.echo(f"Invalid API document: {e}", err=True)
            sys.exit(EXIT_SPEC_ERROR)
        except ConfigurationError as e:
            click.echo(f"Configuration error: {e}", err=True)
            sys.exit(EXIT_CONFIG_ERROR)
        except (GenerationFailed, PipelineFailed) as e:
            hint = " (transient, try again later)" if getattr(e, "retryable", False) else ""
            click.echo(f"Generation failed{hint}: {e}", err=True)
            sys.exit(EXIT_GENERATION_ERROR)

    return wrapper


@click.group()
@click.option("--log-level", default=None, help="Logging level (default from MCP_AGENT_LOG_LEVEL).")
def main(log_level: str | None):
    """API MCP Agent — generate MCP servers from OpenAPI 3.x documents."""
    configure_logging(log_level or get_settings().log_level)


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_handle_errors
def inspect(doc_path: Path):
    """Parse and normalize a document, then print what was found."""
    api = parse_openapi_file(doc_path)
    compact = normalize(api)

    click.echo(api_summary(compact))
    click.echo("")
    for endpoint in compact.endpoints:
        click.echo(endpoint_summary(endpoint))


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(file_okay=False, path_type=Path), help="Output directory for the generated package.")
@click.option("--strategy", default="auto", type=click.Choice(["auto", "monolithic", "staged"]), help="Generation strategy.")
@click.option("--model", default=None, help="LLM model to use.")
@click.option("--zip", "make_zip", is_flag=True, help="Also archive the package as <output>.zip.")
@_handle_errors
def generate(doc_path: Path, output: Path, strategy: str, model: str | None, make_zip: bool):
    """Full pipeline: parse doc -> normalize -> generate -> assemble package."""
    click.echo(f"Parsing {doc_path}...")
    compact = normalize(parse_openapi_file(doc_path))
    click.echo(f"Found {len(compact.endpoints)} endpoints, {len(compact.schemas)} schemas.")

    click.echo(f"Generating MCP server (strategy: {strategy})...")
    generator = CodeGenerator(model=model)
    code = generator.generate(compact, strategy=strategy)

    files = PackageAssembler().assemble(compact, code)
    write_package(files, output)
    for relative in files:
        click.echo(f"  Created {output / relative}")

    click.echo(f"Tool implementations: {code.implementation_report}")
    for operation_id in code.failed_implementations:
        click.echo(f"  Failed: {operation_id}")

    if make_zip:
        zip_path = create_zip(output)
        click.echo(f"Archive saved to {zip_path}")

    click.echo(f"Done! Generated {len(files)} files in {output}")


@main.command("list-models")
@click.option("--model", default=None, help="Model to check against the list.")
@_handle_errors
def list_models(model: str | None):
    """List models the configured provider reports as available."""
    client = LlmClient(model=model)
    validation = client.validate_model()
    if validation.error:
        raise ConfigurationError(f"Could not list models: {validation.error}")

    for name in validation.available_models:
        marker = "*" if name == client.model else " "
        click.echo(f"{marker} {name}")
    if not validation.valid:
        click.echo(f"Configured model {client.model} is not available.", err=True)
