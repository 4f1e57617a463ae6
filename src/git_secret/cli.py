import argparse
import logging
import sys
from pathlib import Path

from rich.table import Table

from . import ops
from .constants import APP_NAME, CONFIG_FILE, ENV_PASSPHRASE, ENV_PRIVATE_KEY, VERSION
from .hide import HideOptions
from .reveal import RevealOptions
from .ui import console

logger = logging.getLogger(APP_NAME)


def setup_logging(verbose: bool) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): If True, debug records are written to stderr.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.handlers.clear()
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


class SecretHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands into categories in the top-level help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Setup": ["init", "config"],
                "Recipients": ["tell", "removeperson", "killperson", "whoknows"],
                "Tracked Files": ["add", "remove", "list", "clean"],
                "Secrets": ["hide", "reveal", "cat", "changes"],
                "General": ["help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="git-secret Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row(
        "core",
        "secrets_dir",
        "str",
        '".gitsecret"',
        "Directory under the repository root holding keys and the path mapping.",
    )
    table.add_row(
        "",
        "extension",
        "str",
        '".secret"',
        "Suffix appended to tracked files to name their encrypted copy.",
    )

    table.add_row(
        "output", "verbose", "bool", "false", "Print per-file progress messages."
    )

    table.add_row(
        "hide", "armor", "bool", "false", "Write ASCII-armored ciphertext."
    )
    table.add_row(
        "",
        "preserve_permissions",
        "bool",
        "false",
        "Copy plaintext permission bits onto the encrypted file.",
    )
    table.add_row(
        "",
        "modified_only",
        "bool",
        "false",
        "Only re-encrypt files whose content changed since the last hide.",
    )

    table.add_row(
        "reveal",
        "preserve_permissions",
        "bool",
        "false",
        "Copy encrypted file permission bits onto the revealed file.",
    )

    console.print(table)
    console.print(
        f"Global file: [cyan]{CONFIG_FILE}[/cyan]. Per repository: "
        "[cyan]git-secret.toml[/cyan] or [cyan]\\[tool.git-secret][/cyan] "
        "in pyproject.toml."
    )


def show_config_file() -> None:
    """Prints the location and current contents of the global configuration file."""
    if not CONFIG_FILE.exists():
        console.print(f"No global configuration at [cyan]{CONFIG_FILE}[/cyan].")
        console.print("Run [bold]git-secret config --list[/bold] to see the options.")
        return

    console.print(f"[cyan]{CONFIG_FILE}[/cyan]")
    console.print(CONFIG_FILE.read_text(), markup=False)


def _add_verbose(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Print per-file progress"
    )


def _add_key_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--private-key",
        metavar="PATH",
        help=f"Private key file (default: ${ENV_PRIVATE_KEY}, path or armored key)",
    )
    parser.add_argument(
        "-p",
        "--passphrase",
        help=f"Passphrase for the private key (default: ${ENV_PASSPHRASE})",
    )


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for all subcommands."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        usage=argparse.SUPPRESS,
        formatter_class=SecretHelpFormatter,
        add_help=False,
    )
    parser.add_argument(
        "-h",
        "--help",
        action="help",
        default=argparse.SUPPRESS,
        help=argparse.SUPPRESS,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"{APP_NAME} {VERSION}",
        help=argparse.SUPPRESS,
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init", help="Initialize git-secret in the repository")

    tell_parser = subparsers.add_parser("tell", help="Add users who can read secrets")
    tell_parser.add_argument("identities", nargs="*", help="Emails or key ids")
    tell_parser.add_argument(
        "-m", action="store_true", dest="use_git_email", help="Use git user.email"
    )
    tell_parser.add_argument(
        "-f", dest="key_file", type=Path, help="Import a public key from a file"
    )
    tell_parser.add_argument(
        "-d", dest="gpg_homedir", type=Path, help="GnuPG home directory"
    )
    _add_verbose(tell_parser)

    for name, text in (
        ("removeperson", "Remove users' keys"),
        ("killperson", "Deprecated alias of removeperson"),
    ):
        person_parser = subparsers.add_parser(name, help=text)
        person_parser.add_argument("identities", nargs="+", help="Emails or key ids")
        _add_verbose(person_parser)

    whoknows_parser = subparsers.add_parser(
        "whoknows", help="List users who can read secrets"
    )
    whoknows_parser.add_argument(
        "-l", action="store_true", dest="long", help="Show key ids and expiry dates"
    )

    add_parser = subparsers.add_parser("add", help="Start tracking files")
    add_parser.add_argument("paths", nargs="+", help="Files to track")
    _add_verbose(add_parser)

    remove_parser = subparsers.add_parser("remove", help="Stop tracking files")
    remove_parser.add_argument("paths", nargs="+", help="Files to untrack")
    remove_parser.add_argument(
        "-c",
        action="store_true",
        dest="clean_encrypted",
        help="Also delete the encrypted files",
    )
    _add_verbose(remove_parser)

    list_parser = subparsers.add_parser("list", help="List tracked files")
    _add_verbose(list_parser)

    clean_parser = subparsers.add_parser("clean", help="Delete all encrypted files")
    _add_verbose(clean_parser)

    hide_parser = subparsers.add_parser("hide", help="Encrypt tracked files")
    hide_parser.add_argument(
        "-c", action="store_true", dest="clean_first", help="Clean before hiding"
    )
    hide_parser.add_argument(
        "-F",
        action="store_true",
        dest="force_continue",
        help="Skip missing files instead of aborting",
    )
    hide_parser.add_argument(
        "-P",
        action="store_true",
        dest="preserve_permissions",
        help="Preserve file permissions",
    )
    hide_parser.add_argument(
        "-d",
        action="store_true",
        dest="delete_unencrypted",
        help="Delete unencrypted files after hiding",
    )
    hide_parser.add_argument(
        "-m",
        action="store_true",
        dest="modified_only",
        help="Only encrypt modified files",
    )
    hide_parser.add_argument(
        "--armor", action="store_true", help="Write ASCII-armored output"
    )
    _add_verbose(hide_parser)

    reveal_parser = subparsers.add_parser("reveal", help="Decrypt tracked files")
    reveal_parser.add_argument(
        "paths", nargs="*", help="Files to reveal (default: all)"
    )
    reveal_parser.add_argument(
        "-f",
        action="store_true",
        dest="force_overwrite",
        help="Overwrite existing files",
    )
    reveal_parser.add_argument(
        "-F",
        action="store_true",
        dest="force_continue",
        help="Skip failing files instead of aborting",
    )
    reveal_parser.add_argument(
        "-P",
        action="store_true",
        dest="preserve_permissions",
        help="Preserve file permissions",
    )
    _add_key_options(reveal_parser)
    _add_verbose(reveal_parser)

    cat_parser = subparsers.add_parser("cat", help="Print decrypted file contents")
    cat_parser.add_argument("paths", nargs="+", help="Files to print")
    _add_key_options(cat_parser)

    changes_parser = subparsers.add_parser(
        "changes", help="Diff hidden files against working copies"
    )
    changes_parser.add_argument("paths", nargs="*", help="Files to diff (default: all)")
    _add_key_options(changes_parser)

    config_parser = subparsers.add_parser(
        "config", help="Show the global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    subparsers.add_parser("help", help="Show this help message")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-secret CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(getattr(args, "verbose", False))

    if args.command is None or args.command == "help":
        parser.print_help()
        return
    elif args.command == "config":
        if args.list:
            show_config_reference()
        else:
            show_config_file()
        return
    elif args.command == "init":
        ops.init_repo()
        return
    elif args.command == "tell":
        ops.tell(
            args.identities,
            use_git_email=args.use_git_email,
            key_file=args.key_file,
            gpg_homedir=args.gpg_homedir,
            verbose=args.verbose,
        )
        return
    elif args.command == "removeperson":
        ops.remove_person(args.identities, args.verbose)
        return
    elif args.command == "killperson":
        ops.kill_person(args.identities, args.verbose)
        return
    elif args.command == "whoknows":
        ops.who_knows(args.long)
        return
    elif args.command == "add":
        ops.add_files(args.paths, args.verbose)
        return
    elif args.command == "remove":
        ops.remove_files(args.paths, args.clean_encrypted, args.verbose)
        return
    elif args.command == "list":
        ops.list_files(args.verbose)
        return
    elif args.command == "clean":
        ops.clean(args.verbose)
        return
    elif args.command == "hide":
        ops.hide_files(
            HideOptions(
                clean_first=args.clean_first,
                force_continue=args.force_continue,
                preserve_permissions=args.preserve_permissions,
                delete_unencrypted=args.delete_unencrypted,
                modified_only=args.modified_only,
                armor=args.armor,
                verbose=args.verbose,
            )
        )
        return
    elif args.command == "reveal":
        ops.reveal_files(
            args.paths,
            RevealOptions(
                force_overwrite=args.force_overwrite,
                force_continue=args.force_continue,
                preserve_permissions=args.preserve_permissions,
                verbose=args.verbose,
            ),
            private_key=args.private_key,
            passphrase=args.passphrase,
        )
        return
    elif args.command == "cat":
        ops.cat_files(args.paths, args.private_key, args.passphrase)
        return
    elif args.command == "changes":
        ops.show_changes(args.paths, args.private_key, args.passphrase)
        return


if __name__ == "__main__":
    main()
