# Read VSIX packages and install them through the host extension service

import logging
import sys
import typing as t
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from xml.etree import ElementTree as ET

VSIX_MANIFEST = "extension.vsixmanifest"

# schema 2011 (VS 2012 and later) and schema 2010 (VS 2010)
NS_2011 = {"ns": "http://schemas.microsoft.com/developer/vsx-schema/2011"}
NS_2010 = {"ns": "http://schemas.microsoft.com/developer/vsx-schema/2010"}


class ExtensionError(Exception):
    pass


@dataclass(frozen=True)
class PackageDescriptor:
    identifier: str
    "Extension identifier (Identity Id of the manifest)."

    name: str
    "Display name."

    version: str
    "Version string."

    path: Path
    "The .vsix file."


@dataclass(frozen=True)
class InstalledExtension:
    identifier: str
    name: str
    version: str
    location: t.Optional[Path] = None


@dataclass
class SettingsScope:
    exe_path: str
    "Visual Studio executable (devenv.exe)."

    root_suffix: str
    "Isolated configuration, empty for the default one."

    extension_dirs: t.List[Path] = field(default_factory=list)
    "Per-user extension directories of this configuration."

    closed: bool = False
    "Set when the scope is released; a closed scope must not be used."


class ExtensionService(t.Protocol):
    def parse_package(self, path: Path) -> PackageDescriptor:
        ...

    def open_scope(self, exe_path: str, root_suffix: str) -> t.ContextManager[SettingsScope]:
        ...

    def find_installed(self, scope: SettingsScope, identifier: str) -> t.Optional[InstalledExtension]:
        ...

    def uninstall(self, scope: SettingsScope, installed: InstalledExtension) -> None:
        ...

    def install(self, scope: SettingsScope, package: PackageDescriptor, per_machine: bool) -> None:
        ...


def parse_manifest(data: bytes, path: Path) -> PackageDescriptor:
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise ExtensionError(f"{path}: malformed {VSIX_MANIFEST}: {e}") from e

    identity = root.find("ns:Metadata/ns:Identity", NS_2011)
    if identity is not None:
        identifier = identity.get("Id")
        version = identity.get("Version")
        name = root.findtext("ns:Metadata/ns:DisplayName", default="", namespaces=NS_2011)
    else:
        identity = root.find("ns:Identifier", NS_2010)
        if identity is None:
            raise ExtensionError(f"{path}: no extension identity in {VSIX_MANIFEST}")
        identifier = identity.get("Id")
        version = identity.findtext("ns:Version", namespaces=NS_2010)
        name = identity.findtext("ns:Name", default="", namespaces=NS_2010)

    if not identifier or not version:
        raise ExtensionError(f"{path}: extension identity must have an Id and a Version")

    return PackageDescriptor(identifier, name.strip() or identifier, version.strip(), path)


def read_manifest(path: Path) -> PackageDescriptor:
    """
    Read the identity of a .vsix package from its extension.vsixmanifest.
    """

    try:
        with zipfile.ZipFile(path) as zip:
            data = zip.read(VSIX_MANIFEST)
    except zipfile.BadZipFile as e:
        raise ExtensionError(f"{path} is not a VSIX package") from e
    except KeyError as e:
        raise ExtensionError(f"{path}: {VSIX_MANIFEST} not found") from e

    return parse_manifest(data, path)


def load_package(service: ExtensionService, path: Path) -> PackageDescriptor:
    try:
        return service.parse_package(path)
    except ExtensionError:
        raise
    except Exception as e:
        raise ExtensionError(f"cannot read VSIX file {path}: {e}") from e


def install(service: ExtensionService, exe_path: str, package: PackageDescriptor, root_suffix: str):
    """
    Install the package for the current user, replacing any extension with the same identifier.

    The settings scope is released whatever happens. Failures are not retried.
    """

    with service.open_scope(exe_path, root_suffix) as scope:
        installed = service.find_installed(scope, package.identifier)
        if installed is not None:
            print(
                f"Extension {package.name} version {installed.version} already installed, uninstalling first.",
                file=sys.stderr,
            )
            service.uninstall(scope, installed)

        logging.debug(f"install {package.identifier} {package.version} (root suffix '{root_suffix}')")
        service.install(scope, package, per_machine=False)
