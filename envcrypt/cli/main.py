"""CLI entrypoint for agent-envcrypt."""
import sys
import argparse
import logging
from pathlib import Path

from envcrypt import __version__
from .validators import validate_variable_name

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def cmd_version(args):
    """Show version information."""
    print(f"agent-envcrypt {__version__}")


def _project_dir(args) -> Path:
    """Service path from --service-path, the stored default, or the current directory."""
    from envcrypt.secrets.domains.preferences import get_default_service_path

    return Path(args.service_path or get_default_service_path() or ".").expanduser().resolve()


def cmd_config_set_service_path(args):
    """Remember the project used when --service-path is not given."""
    from envcrypt.secrets.domains.models import DEFAULT_STORE_FILE
    from envcrypt.secrets.domains.preferences import set_default_service_path

    service_path = Path(args.path).expanduser().resolve()

    if not service_path.is_dir():
        print(f"Error: Service path is not a directory: {service_path}", file=sys.stderr)
        sys.exit(1)

    if not (service_path / DEFAULT_STORE_FILE).exists():
        logger.warning(f"Warning: no {DEFAULT_STORE_FILE} in {service_path} yet")

    stored = set_default_service_path(service_path)
    print(f"Default service path set to: {stored}")


def cmd_config_use_stage(args):
    """Select the stage for a project."""
    from envcrypt.secrets.domains.preferences import select_stage

    project = _project_dir(args)
    select_stage(project, args.stage)
    print(f"Using stage '{args.stage}' for {project}")


def cmd_config_show(args):
    """Show the project, config file and selected stage that would be used."""
    from envcrypt.secrets.domains.config_loader import CONFIG_FILENAME
    from envcrypt.secrets.domains.preferences import get_default_service_path, get_selected_stage

    if args.service_path:
        source = "command line"
    elif get_default_service_path():
        source = "preference"
    else:
        source = "current directory"

    project = _project_dir(args)
    print(f"Service path: {project}")
    print(f"Source: {source}")

    config_file = project / CONFIG_FILENAME
    if config_file.is_file():
        print(f"Config file: {config_file}")
    else:
        print(f"Config file: {config_file} (not found, using environment only)")

    stage = get_selected_stage(project)
    if stage:
        print(f"Selected stage: {stage}")
    else:
        print("Selected stage: none (ENVCRYPT_STAGE or provider.stage applies)")


def cmd_config_clear(args):
    """Forget the selected stage and default service path for a project."""
    from envcrypt.secrets.domains.preferences import clear_project

    project = _project_dir(args)
    if clear_project(project):
        print(f"Preferences cleared for {project}")
    else:
        print(f"No preferences stored for {project}")


def cmd_encryptor(args):
    """Encrypt a value into env.json, or decrypt one with --decrypt."""
    from envcrypt.secrets.domains import kms_client
    from envcrypt.secrets.domains.config_loader import load_host_defaults
    from envcrypt.secrets.domains.errors import ValidationError
    from envcrypt.secrets.domains.key_context import resolve_key_context
    from envcrypt.secrets.domains.models import CommandOptions
    from envcrypt.secrets.workflows.secret_operations import run_encryptor

    if not args.decrypt:
        validate_variable_name(args.variable)

    host = load_host_defaults(args.service_path, args.config)
    ctx = resolve_key_context(
        host,
        stage=args.stage,
        region=args.region,
        profile=args.profile,
        service_path=args.service_path,
    )
    logger.debug(f"Resolved key context: {ctx}")

    options = CommandOptions(
        variable=args.variable,
        value=args.value,
        decrypt=args.decrypt,
        common=args.common,
    )

    try:
        run_encryptor(
            options,
            ctx,
            kms_client.get_gateway(host.kms_backend),
            store_path=Path(ctx.service_path) / host.store_file,
            report=print,
        )
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (store, secret not found, KMS failure, config, etc.)
        2 - Usage errors (missing --variable, invalid variable name, etc.)
    """
    parser = argparse.ArgumentParser(
        prog="envcrypt",
        description="Agent-envcrypt CLI - KMS-encrypted per-stage secrets in env.json",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (store, secret not found, KMS failure, config, etc.)
  2 - Usage error (missing --variable, invalid variable name, etc.)

Environment variables:
  ENVCRYPT_STAGE             - Default stage (overrides config file)
  ENVCRYPT_KEY_ID            - KMS key id for every stage (overrides config file)
  AWS_REGION / AWS_PROFILE   - Default region and profile (override config file)

Configuration:
  Default location: ./envcrypt.yml in the service path
  Custom path: pass --config
  Default project: set with 'envcrypt config set-service-path <path>'
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of agent-envcrypt"
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Per-user project preferences",
        description="""
Remember a default service path and the stage selected for each project.

Preferences are stored in:
~/.config/agent-envcrypt/preferences.json
        """
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_service_path_parser = config_subparsers.add_parser(
        "set-service-path",
        help="Set default service path",
        description="Use this project directory when --service-path is not given"
    )
    config_set_service_path_parser.add_argument(
        "path",
        help="Directory holding env.json and envcrypt.yml"
    )

    config_use_stage_parser = config_subparsers.add_parser(
        "use-stage",
        help="Select the stage for a project",
        description="""
Select the stage used by encryptor for one project.

ENVCRYPT_STAGE and --stage still take precedence; provider.stage from
envcrypt.yml applies only when no stage is selected.
        """
    )
    config_use_stage_parser.add_argument("stage", help="Stage name, e.g. dev or prod")

    config_show_parser = config_subparsers.add_parser(
        "show",
        help="Show project preferences",
        description="Display the service path, config file and selected stage"
    )

    config_clear_parser = config_subparsers.add_parser(
        "clear",
        help="Clear project preferences",
        description="Forget the selected stage (and default service path) of a project"
    )

    for project_parser in (config_use_stage_parser, config_show_parser, config_clear_parser):
        project_parser.add_argument(
            "--service-path",
            help="Project directory (default: stored service path or current directory)"
        )

    # encryptor command
    encryptor_parser = subparsers.add_parser(
        "encryptor",
        help="Encrypt or decrypt a secret",
        description="""
Encrypt a value with KMS and store it in env.json, tagged with 'encrypted:'.

With --decrypt, the stored value is decrypted and printed instead.
Secrets go to the active stage unless --common is given.
        """
    )
    encryptor_parser.add_argument(
        "--variable",
        help="Name of the attribute"
    )
    encryptor_parser.add_argument(
        "--value",
        help="Value of the attribute"
    )
    encryptor_parser.add_argument(
        "--decrypt",
        action="store_true",
        help="Denotes that variables should be decrypted"
    )
    encryptor_parser.add_argument(
        "--common",
        action="store_true",
        help="Encrypt reusable variable shared by every stage"
    )
    encryptor_parser.add_argument("--stage", help="Stage (overrides provider.stage)")
    encryptor_parser.add_argument("--region", help="Region (overrides provider.region)")
    encryptor_parser.add_argument("--profile", help="Profile (overrides provider.profile)")
    encryptor_parser.add_argument(
        "--service-path",
        help="Directory holding env.json and envcrypt.yml (default: config file directory or .)"
    )
    encryptor_parser.add_argument(
        "--config",
        help="Path to host config file"
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "config":
            if args.config_command == "set-service-path":
                cmd_config_set_service_path(args)
            elif args.config_command == "use-stage":
                cmd_config_use_stage(args)
            elif args.config_command == "show":
                cmd_config_show(args)
            elif args.config_command == "clear":
                cmd_config_clear(args)
            else:
                config_parser.print_help()
                sys.exit(2)
        elif args.command == "encryptor":
            cmd_encryptor(args)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
