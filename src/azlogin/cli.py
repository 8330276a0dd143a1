"""CLI interface for azure-login"""

import json
import logging
import os
import sys
from typing import Optional

import click

from azlogin import __version__
from azlogin.application.credential_service import CredentialService
from azlogin.domain.config.login import ConfigurationError, LoginOptions
from azlogin.infrastructure.output import OUTPUT_FORMATS, OutputError, print_output

logger = logging.getLogger(__name__)

PROG_NAME = "azure-login"


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration (stderr, so stdout stays machine readable)"""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger().setLevel(level)


def _die(message: str, verbose: bool = False, exc: Optional[BaseException] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def resolve_exec_path() -> str:
    """Absolute path of the running azure-login executable, for kubeconfig exec entries

    Falls back to the bare program name, which works when it is on PATH.
    """
    argv0 = sys.argv[0] if sys.argv else ""
    if argv0 and os.path.basename(argv0).startswith(PROG_NAME):
        try:
            path = os.path.realpath(argv0)
        except OSError:
            return PROG_NAME
        if os.path.isfile(path):
            return path
    return PROG_NAME


def _service(ctx: click.Context) -> CredentialService:
    return ctx.obj.get("service") or CredentialService()


output_option = click.option(
    "--output",
    "-o",
    "output_format",
    default="json",
    show_default=True,
    type=click.Choice(OUTPUT_FORMATS, case_sensitive=False),
    help="Output format",
)
query_option = click.option("--query", default=None, help="JMESPath query string")


def _print(data, output_format: str, query: Optional[str], verbose: bool) -> None:
    try:
        print_output(data, output_format, query)
    except OutputError as e:
        _die(str(e), verbose=verbose, exc=e)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose (DEBUG) logging")
@click.pass_context
def cli(ctx, verbose: bool):
    """Lightweight Azure authentication CLI tool.

    A drop-in replacement for Azure CLI authentication commands in CI/CD
    environments, particularly GitHub Actions.
    """
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["verbose"] = verbose


@cli.command()
def version():
    """Print the version number"""
    click.echo(f"{PROG_NAME} version {__version__}")


@cli.command()
@click.option("--client-id", default=None, help="Azure Application (Client) ID [env: AZURE_CLIENT_ID]")
@click.option("--tenant-id", default=None, help="Azure Active Directory Tenant ID [env: AZURE_TENANT_ID]")
@click.option(
    "--subscription-id",
    default=None,
    help="Azure Subscription ID (optional) [env: AZURE_SUBSCRIPTION_ID]",
)
@click.option(
    "--allow-no-subscriptions",
    is_flag=True,
    help="Allow authentication without subscription",
)
@click.pass_context
def login(ctx, client_id: str, tenant_id: str, subscription_id: str, allow_no_subscriptions: bool):
    """Authenticate to Azure using OIDC.

    Uses OpenID Connect workload identity federation; designed for GitHub
    Actions jobs with federated credentials.
    """
    verbose = ctx.obj.get("verbose", False)
    service = _service(ctx)

    try:
        options = LoginOptions.resolve(
            client_id=client_id,
            tenant_id=tenant_id,
            subscription_id=subscription_id,
            allow_no_subscription=allow_no_subscriptions,
            environ=service.environ,
        )
    except ConfigurationError as e:
        _die(str(e), verbose=verbose)

    try:
        service.login(options)
    except Exception as e:
        _die(f"login failed: {e}", verbose=verbose, exc=e)

    click.echo("Successfully authenticated to Azure", err=True)
    click.echo(f"Tenant: {options.tenant_id}", err=True)
    click.echo(f"Client: {options.client_id}", err=True)
    if options.subscription_id:
        click.echo(f"Subscription: {options.subscription_id}", err=True)


@cli.command()
@click.pass_context
def logout(ctx):
    """Remove the stored Azure token"""
    verbose = ctx.obj.get("verbose", False)
    try:
        _service(ctx).logout()
    except Exception as e:
        _die(f"logout failed: {e}", verbose=verbose, exc=e)
    click.echo("Logged out", err=True)


@cli.group()
def account():
    """Manage Azure account and authentication"""


@account.command("show")
@output_option
@query_option
@click.pass_context
def account_show(ctx, output_format: str, query: Optional[str]):
    """Show current account information"""
    verbose = ctx.obj.get("verbose", False)
    try:
        info = _service(ctx).account_info()
    except Exception as e:
        _die(str(e), verbose=verbose, exc=e)
    _print(info, output_format, query, verbose)


@account.command("get-access-token")
@output_option
@query_option
@click.pass_context
def account_get_access_token(ctx, output_format: str, query: Optional[str]):
    """Get an access token for Azure resource access.

    Fails when the stored token has expired or expires within five minutes.
    """
    verbose = ctx.obj.get("verbose", False)
    try:
        info = _service(ctx).access_token_info()
    except Exception as e:
        _die(str(e), verbose=verbose, exc=e)
    _print(info, output_format, query, verbose)


@cli.group()
def oidc():
    """Manage OIDC tokens"""


@oidc.command("get-token")
@output_option
@query_option
@click.pass_context
def oidc_get_token(ctx, output_format: str, query: Optional[str]):
    """Get the GitHub Actions OIDC token.

    The token can be used with WorkloadIdentityCredential in Azure SDKs: write
    it to a file and point AZURE_FEDERATED_TOKEN_FILE at it.
    """
    verbose = ctx.obj.get("verbose", False)
    try:
        token = _service(ctx).get_oidc_token()
    except Exception as e:
        _die(f"failed to get OIDC token: {e}", verbose=verbose, exc=e)
    _print({"value": token}, output_format, query, verbose)


@cli.group()
def aks():
    """Manage Azure Kubernetes Service"""


@aks.command("get-credentials")
@click.option("--resource-group", "-g", required=True, help="Resource group name")
@click.option("--name", "-n", "cluster_name", required=True, help="Cluster name")
@click.pass_context
def aks_get_credentials(ctx, resource_group: str, cluster_name: str):
    """Get AKS cluster credentials and update kubeconfig.

    The cluster user is configured to obtain tokens by running
    `azure-login kubectl-credential`.
    """
    verbose = ctx.obj.get("verbose", False)
    click.echo(
        f"Retrieving credentials for cluster {cluster_name} in resource group {resource_group}...",
        err=True,
    )
    try:
        path, context_name = _service(ctx).aks_get_credentials(
            resource_group, cluster_name, resolve_exec_path()
        )
    except Exception as e:
        _die(f"failed to get cluster credentials: {e}", verbose=verbose, exc=e)
    click.echo(f'Merged "{context_name}" as current context in {path}', err=True)


@cli.command("kubectl-credential", hidden=True)
@click.pass_context
def kubectl_credential(ctx):
    """Output credentials in kubectl ExecCredential format"""
    verbose = ctx.obj.get("verbose", False)
    try:
        credential = _service(ctx).kubectl_credential()
    except Exception as e:
        _die(f"failed to get Kubernetes credential: {e}", verbose=verbose, exc=e)
    click.echo(json.dumps(credential, separators=(",", ":")))


def main():
    """Main entry point"""
    cli(obj={}, prog_name=PROG_NAME)


if __name__ == "__main__":
    main()
