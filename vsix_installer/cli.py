# Install a .vsix into a given Visual Studio, optionally into an isolated configuration (root suffix)

import argparse
import logging
import sys
import typing as t
from pathlib import Path

import requests

from .download import is_url, local_vsix
from .extensions import ExtensionService, install, load_package
from .registry import (
    BASELINE_VERSION,
    RegistryStore,
    VersionNotFound,
    WindowsRegistry,
    find_versions,
    get_version_exe,
    resolve_version,
)
from .vsixinstaller import VsixInstallerService

BRIGHT_GREEN, FADE, GREEN, RESET = (
    ("\033[1;32m", "\033[2m", "\033[32m", "\033[0m") if sys.stdout.isatty() else ("", "", "", "")
)

USAGE = """
  %(prog)s -f|--vsix <path> [-v|--version <version>]
  %(prog)s [<version>] <rootSuffix> <vsixPath>
  %(prog)s --list"""


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def make_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="vsix-installer", usage=USAGE, add_help=False)
    parser.add_argument("-?", "-h", "--help", action="help", help="show this help message and exit")
    parser.add_argument("-f", "--vsix", help="the path or URL of the vsix to install")
    parser.add_argument(
        "-v",
        "--version",
        help=f"the version of Visual Studio to install to ({BASELINE_VERSION} with --vsix, latest otherwise)",
    )
    parser.add_argument("--list", help="list the installed versions of Visual Studio", action="store_true")
    parser.add_argument("--verbose", help="verbose and debug info", action="store_true")
    parser.add_argument("ARGS", help="[<version>] <rootSuffix> <vsixPath>", nargs="*")
    return parser


def set_verbosity(verbose: bool):

    format = f"{GREEN}%(asctime)s{RESET}{FADE} - %(levelname)s - %(message)s{RESET}"
    datefmt = None  # "%H:%M:%S"
    if verbose:
        logging.basicConfig(format=format, datefmt=datefmt, level=logging.DEBUG)
    else:
        logging.basicConfig(format=format, datefmt=datefmt, level=logging.INFO)


def list_versions(registry: RegistryStore) -> int:
    versions = find_versions(registry)
    if not versions:
        logging.error("cannot find any installed copies of Visual Studio")
        return 1

    for version in versions:
        exe = get_version_exe(registry, version.name)
        print(f"{BRIGHT_GREEN}{version.name:<8}{RESET} {exe or '-'}")
    return 0


def main(
    argv: t.Optional[t.List[str]] = None,
    registry: t.Optional[RegistryStore] = None,
    service_factory: t.Callable[[str], ExtensionService] = VsixInstallerService,
) -> int:
    parser = make_parser()
    args = parser.parse_intermixed_args(argv)

    set_verbosity(args.verbose)

    if registry is None:
        registry = WindowsRegistry()

    if args.list:
        return list_versions(registry)

    # --vsix form: default configuration, baseline version
    if args.vsix:
        if args.ARGS:
            parser.error("positional arguments cannot be combined with --vsix")
        version, root_suffix, location = args.version or BASELINE_VERSION, "", args.vsix

    elif len(args.ARGS) == 3:
        if args.version:
            parser.error("the version is given twice")
        version, root_suffix, location = args.ARGS

    elif len(args.ARGS) == 2:
        version = args.version
        root_suffix, location = args.ARGS

    else:
        parser.error("expected [<version>] <rootSuffix> <vsixPath>")

    if not is_url(location) and not Path(location).is_file():
        logging.error(f"cannot find VSIX file {location}")
        return 1

    try:
        version, exe = resolve_version(registry, version)
    except VersionNotFound as e:
        logging.error(e)
        return 1

    logging.debug(f"using Visual Studio {version}: {exe}")

    try:
        with local_vsix(location) as vsix:
            service = service_factory(version)
            package = load_package(service, vsix.resolve())
            print(f"Installing {package.name} version {package.version}", file=sys.stderr)

            install(service, exe, package, root_suffix)

    except requests.RequestException as e:
        logging.error(f"cannot download {location}: {e}")
        return 1

    except Exception as e:
        logging.error(f"Failed to install extension: {e}")
        return 1

    return 0
