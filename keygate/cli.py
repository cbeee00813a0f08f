"""CLI for API key management."""
import functools
from dataclasses import dataclass, field
from typing import Callable

import click

from .adapters.base import KeyStore, SecretStore
from .adapters.factory import create_key_store, create_secret_store
from .config import Settings, get_settings
from .keyfiles import read_key_list, write_key_list, write_key_metadata
from .logging import setup_logging
from .services.crypto import (
    EncryptionKeyCodec,
    KeyGateError,
    KeyLifecycleManager,
    RotationState,
    TokenPolicy,
    UploadReport,
    Validator,
)
from .services.crypto.key_lifecycle import DEFAULT_ROTATION_COUNT

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@dataclass
class CliContext:
    """Collaborators shared by all commands."""
    settings: Settings
    store_factory: Callable[[str], KeyStore] = None
    secret_store: SecretStore = None
    manager: KeyLifecycleManager = field(init=False)

    def __post_init__(self):
        if self.store_factory is None:
            self.store_factory = functools.partial(create_key_store, settings=self.settings)
        if self.secret_store is None:
            self.secret_store = create_secret_store(self.settings)
        self.manager = KeyLifecycleManager(self.store_factory)


pass_cli_context = click.make_pass_decorator(CliContext)


def handle_errors(func):
    """Turn domain errors into a clean CLI failure (exit code 1)."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyGateError as e:
            raise click.ClickException(str(e)) from e
    return wrapper


def validate_encryption_key(ctx, param, value):
    """Click callback rejecting malformed encryption keys."""
    if value is not None and not EncryptionKeyCodec.is_valid(value):
        raise click.BadParameter("Invalid encryption key format")
    return value


def store_encryption_key(obj: CliContext, encryption_key: str) -> None:
    name = obj.settings.ENCRYPTION_KEY_SECRET_NAME
    click.echo(f"🔒 Storing encryption key as secret {name}...")
    obj.secret_store.put_secret(name, encryption_key)
    click.echo("✅ Secret set successfully!")


def echo_report(report: UploadReport) -> None:
    for result in report.results:
        if result.success:
            click.echo(f"✅ Uploaded API key: {result.preview}")
        else:
            click.echo(f"❌ Failed to upload API key: {result.preview} ({result.error})", err=True)
    click.echo(
        f"\n{report.status.value}: {report.succeeded} uploaded, {report.failed} failed"
    )


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("--verbose", "-v", is_flag=True, help="Show structured log output")
@click.pass_context
def cli(ctx, verbose: bool):
    """API Key Management Tools."""
    setup_logging(json_output=False, level="INFO" if verbose else "WARNING")
    if ctx.obj is None:
        ctx.obj = CliContext(settings=get_settings())


@cli.command()
@click.option("--count", "-c", default=5, show_default=True, type=click.IntRange(min=1),
              help="Number of keys to generate")
@click.option("--output", "-o", default="api-keys.json", show_default=True,
              type=click.Path(dir_okay=False), help="Output file path")
@click.option("--prefix", "-p", default=None, help="Key prefix (default: key<N>-)")
@click.option("--special", "-s", is_flag=True, help="Include special characters")
@click.option("--length", "-l", default=32, show_default=True, type=click.IntRange(min=1, max=1024),
              help="Key length")
@click.option("--formatted/--no-formatted", default=True, show_default=True,
              help="Group keys with dashes every 8 characters")
@pass_cli_context
@handle_errors
def generate(obj: CliContext, count: int, output: str, prefix: str | None, special: bool,
             length: int, formatted: bool):
    """Generate new API keys."""
    policy = TokenPolicy(length=length, prefix=prefix, use_special_chars=special, formatted=formatted)
    tokens = obj.manager.generate_tokens(count, policy)
    write_key_list(tokens, output)
    click.echo(f"✅ Saved {len(tokens)} API keys to {output}")


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
@click.argument("namespace")
@click.argument("encryption_key", required=False, callback=validate_encryption_key)
@click.option("--set-secret", "-s", is_flag=True, help="Store the encryption key in the secret store")
@click.option("--metadata-file", default="keys-metadata.json", show_default=True,
              type=click.Path(dir_okay=False), help="Where to write the encryption key")
@pass_cli_context
@handle_errors
@click.pass_context
def upload(ctx, obj: CliContext, file: str, namespace: str, encryption_key: str | None,
           set_secret: bool, metadata_file: str):
    """Upload API keys from FILE to the key store NAMESPACE.

    A new encryption key is generated when ENCRYPTION_KEY is omitted.
    """
    tokens = read_key_list(file)

    if encryption_key is None:
        encryption_key = EncryptionKeyCodec.generate()
        click.echo(f"\n🔑 Generated encryption key: {encryption_key}")

    write_key_metadata(encryption_key, metadata_file)
    click.echo(f"\n✅ Created {metadata_file} with encryption key.")

    if set_secret:
        store_encryption_key(obj, encryption_key)
    else:
        click.echo("\n⚠️ IMPORTANT: Store the encryption key as a secret with:")
        click.echo(f'keygate encrypt --set-secret, or export {obj.settings.ENCRYPTION_KEY_SECRET_NAME}="{encryption_key}"')
        click.echo(f"\n🔒 After setting the secret, delete {metadata_file} for security.")

    click.echo(f"\n📤 Uploading {len(tokens)} API keys to {namespace}...")
    report = obj.manager.encrypt_and_persist(tokens, encryption_key, obj.store_factory(namespace))
    echo_report(report)

    if report.status != RotationState.COMPLETED:
        ctx.exit(1)


@cli.command()
@click.option("--namespace", "-n", required=True, help="Key store namespace")
@click.option("--encryption-key", "-e", required=True, callback=validate_encryption_key,
              help="Encryption key")
@click.option("--count", "-c", default=DEFAULT_ROTATION_COUNT, show_default=True,
              type=click.IntRange(min=1), help="Number of new keys to generate")
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False),
              help="Output file for new keys")
@pass_cli_context
@handle_errors
@click.pass_context
def rotate(ctx, obj: CliContext, namespace: str, encryption_key: str, count: int, output: str | None):
    """Rotate API keys by adding new ones to NAMESPACE.

    Existing keys stay valid until removed from the store.
    """
    report = obj.manager.rotate(namespace, encryption_key, count)
    echo_report(report)

    if output:
        # Only tokens that reached the store are worth distributing
        write_key_list([r.token for r in report.successes], output)
        click.echo(f"✅ Saved {report.succeeded} API keys to {output}")

    click.echo("\n🔄 API key rotation complete!")
    click.echo(f"📝 {report.succeeded} of {count} new keys have been generated and uploaded")
    click.echo("⚠️ Remember to notify your users about the new keys and set a deprecation date for old keys")

    if report.status != RotationState.COMPLETED:
        ctx.exit(1)


@cli.command()
@click.argument("key")
@click.argument("encrypted_keys_file", type=click.Path(dir_okay=False))
@click.argument("encryption_key", callback=validate_encryption_key)
@handle_errors
@click.pass_context
def verify(ctx, key: str, encrypted_keys_file: str, encryption_key: str):
    """Verify that KEY matches one of the envelopes in ENCRYPTED_KEYS_FILE."""
    envelopes = read_key_list(encrypted_keys_file)
    if Validator().validate(key, envelopes, encryption_key):
        click.echo("✅ API key is valid")
    else:
        click.echo("❌ API key is not valid")
        ctx.exit(1)


@cli.command()
@click.option("--formatted/--no-formatted", "-f/-F", default=True, show_default=True,
              help="Format with dashes")
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False), help="Save to file")
@click.option("--set-secret", "-s", is_flag=True, help="Store in the secret store")
@pass_cli_context
@handle_errors
def encrypt(obj: CliContext, formatted: bool, output: str | None, set_secret: bool):
    """Generate an encryption key."""
    encryption_key = EncryptionKeyCodec.generate(formatted)
    click.echo(f"\n🔑 Generated encryption key: {encryption_key}")

    if output:
        write_key_metadata(encryption_key, output)
        click.echo(f"\n✅ Saved encryption key to {output}")

    if set_secret:
        store_encryption_key(obj, encryption_key)


@cli.command("help")
@click.argument("command", required=False)
@click.pass_context
def help_command(ctx, command: str | None):
    """Show help, optionally for one COMMAND."""
    parent = ctx.parent
    if command is None:
        click.echo(cli.get_help(parent))
        return

    cmd = cli.get_command(parent, command)
    if cmd is None:
        raise click.UsageError(f"Unknown command: {command}", ctx=parent)
    with click.Context(cmd, info_name=command, parent=parent) as cmd_ctx:
        click.echo(cmd.get_help(cmd_ctx))


if __name__ == "__main__":
    cli()
