# Extension service backed by VSIXInstaller.exe and the per-user extension directories

import logging
import os
import re
import subprocess
import typing as t
from contextlib import contextmanager
from pathlib import Path

from .extensions import (
    VSIX_MANIFEST,
    ExtensionError,
    InstalledExtension,
    PackageDescriptor,
    SettingsScope,
    parse_manifest,
    read_manifest,
)

VSIX_INSTALLER = "VSIXInstaller.exe"


def local_app_data() -> Path:
    return Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))


class VsixInstallerService:
    """
    Drive the VSIXInstaller.exe shipped next to devenv.exe.

    Installed extensions are found in %LOCALAPPDATA%\\Microsoft\\VisualStudio\\<version><suffix>\\Extensions,
    where Visual Studio 2017 and later insert an instance id: 15.0_1a2b3c4dExp.
    """

    def __init__(self, version: str, app_data: t.Optional[Path] = None):
        self.version = version
        self.app_data = app_data or local_app_data()

    def parse_package(self, path: Path) -> PackageDescriptor:
        return read_manifest(path)

    def extension_dirs(self, root_suffix: str) -> t.List[Path]:
        base = self.app_data / "Microsoft" / "VisualStudio"
        if not base.is_dir():
            return []

        pattern = re.compile(rf"{re.escape(self.version)}(_[0-9a-f]{{8}})?{re.escape(root_suffix)}", re.IGNORECASE)
        dirs = list()
        for config in sorted(base.iterdir()):
            if config.is_dir() and pattern.fullmatch(config.name) and (config / "Extensions").is_dir():
                dirs.append(config / "Extensions")
        return dirs

    @contextmanager
    def open_scope(self, exe_path: str, root_suffix: str) -> t.Iterator[SettingsScope]:
        scope = SettingsScope(exe_path, root_suffix, self.extension_dirs(root_suffix))
        logging.debug(f"open scope {exe_path} '{root_suffix}': {[str(d) for d in scope.extension_dirs]}")
        try:
            yield scope
        finally:
            scope.closed = True
            logging.debug(f"close scope {exe_path} '{root_suffix}'")

    def find_installed(self, scope: SettingsScope, identifier: str) -> t.Optional[InstalledExtension]:
        check_open(scope)

        for extension_dir in scope.extension_dirs:
            for manifest in sorted(extension_dir.rglob(VSIX_MANIFEST)):
                try:
                    package = parse_manifest(manifest.read_bytes(), manifest)
                except ExtensionError as e:
                    logging.debug(f"skip {manifest}: {e}")
                    continue
                if package.identifier.casefold() == identifier.casefold():
                    return InstalledExtension(package.identifier, package.name, package.version, manifest.parent)

        return None

    def uninstall(self, scope: SettingsScope, installed: InstalledExtension) -> None:
        check_open(scope)
        self.run(scope, [f"/uninstall:{installed.identifier}"])

    def install(self, scope: SettingsScope, package: PackageDescriptor, per_machine: bool) -> None:
        check_open(scope)
        args = ["/admin"] if per_machine else []
        self.run(scope, args + [str(package.path)])

    def run(self, scope: SettingsScope, args: t.List[str]):
        installer = Path(scope.exe_path).parent / VSIX_INSTALLER
        if not installer.is_file():
            raise ExtensionError(f"cannot find {installer}")

        cmd = [str(installer), "/quiet"]
        if scope.root_suffix:
            cmd.append(f"/rootSuffix:{scope.root_suffix}")
        cmd.extend(args)

        logging.debug(f"run {cmd}")
        proc = subprocess.run(cmd, capture_output=True, text=True)
        if proc.returncode != 0:
            output = (proc.stdout + proc.stderr).strip().splitlines()
            reason = output[-1] if output else "no output"
            raise ExtensionError(f"{VSIX_INSTALLER} exited with code {proc.returncode}: {reason}")


def check_open(scope: SettingsScope):
    if scope.closed:
        raise ExtensionError(f"settings scope for {scope.exe_path} is closed")
