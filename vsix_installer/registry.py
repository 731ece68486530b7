# Find the installed copies of Visual Studio and their executable

import logging
import re
import typing as t
from dataclasses import dataclass
from decimal import Decimal

VS_KEY = r"SOFTWARE\Microsoft\VisualStudio"
VS_SETUP_KEY = r"Setup\VS"
VS_EXE_VALUE = "EnvironmentPath"

# used by the --vsix form when no --version is given
BASELINE_VERSION = "14.0"

# invariant culture: a leading or a trailing sign, ASCII digits with "," group separators, optional decimals
VERSION_RE = re.compile(
    r"^\s*(?P<lead>[+-])?(?P<number>[0-9][0-9,]*(?:\.[0-9]*)?|\.[0-9]+)(?P<trail>[+-])?\s*$", re.ASCII
)


class VersionNotFound(Exception):
    pass


class RegistryStore(t.Protocol):
    def list_children(self, path: str) -> t.List[str]:
        ...

    def get_value(self, path: str, name: str) -> t.Optional[str]:
        ...


class WindowsRegistry:
    """
    HKEY_LOCAL_MACHINE, 32-bit view: Visual Studio registers itself there even on 64-bit Windows.
    """

    def _open(self, path: str):
        import winreg

        return winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, path, 0, winreg.KEY_READ | winreg.KEY_WOW64_32KEY)

    def list_children(self, path: str) -> t.List[str]:
        import winreg

        names = list()
        try:
            with self._open(path) as key:
                count, _, _ = winreg.QueryInfoKey(key)
                for i in range(count):
                    names.append(winreg.EnumKey(key, i))
        except OSError as e:
            logging.debug(f"cannot enumerate {path}: {e}")
        return names

    def get_value(self, path: str, name: str) -> t.Optional[str]:
        import winreg

        try:
            with self._open(path) as key:
                value, _ = winreg.QueryValueEx(key, name)
        except OSError as e:
            logging.debug(f"cannot read {path}\\{name}: {e}")
            return None
        return value if isinstance(value, str) else None


@dataclass(frozen=True)
class VsVersion:
    number: Decimal
    "Parsed version."

    name: str
    "Registry key name, used for lookups."

    def __str__(self) -> str:
        return self.name


def parse_version(name: str) -> t.Optional[Decimal]:
    m = VERSION_RE.match(name)
    if not m or (m["lead"] and m["trail"]):
        return None
    sign = m["lead"] or m["trail"] or ""
    return Decimal(sign + m["number"].replace(",", ""))


def find_versions(store: RegistryStore) -> t.List[VsVersion]:
    """Installed versions, oldest first."""

    versions = list()
    for name in store.list_children(VS_KEY):
        number = parse_version(name)
        if number is None:
            logging.debug(f"ignore registry key {name}")
            continue
        versions.append(VsVersion(number, name))

    return sorted(versions, key=lambda v: v.number)


def latest_version(store: RegistryStore) -> t.Optional[VsVersion]:
    versions = find_versions(store)
    if versions:
        return versions[-1]
    return None


def get_version_exe(store: RegistryStore, version: str) -> t.Optional[str]:
    exe = store.get_value(f"{VS_KEY}\\{version}\\{VS_SETUP_KEY}", VS_EXE_VALUE)
    logging.debug(f"Visual Studio {version}: {exe}")
    return exe or None


def resolve_version(store: RegistryStore, version: t.Optional[str] = None) -> t.Tuple[str, str]:
    """
    Return the version and the executable path of the Visual Studio to install into.

    Without a version, the latest installed one is used. A version made of digits only
    ("15") is retried as "15.0" when it does not match a registry key.
    """

    if version is None:
        latest = latest_version(store)
        if latest is None:
            raise VersionNotFound("cannot find any installed copies of Visual Studio")
        version = latest.name
        exe = get_version_exe(store, version)
    else:
        exe = get_version_exe(store, version)
        if exe is None and re.fullmatch(r"[0-9]+", version):
            exe = get_version_exe(store, f"{version}.0")
            if exe is not None:
                version = f"{version}.0"

    if exe is None:
        installed = ", ".join(str(v) for v in find_versions(store)) or "none"
        raise VersionNotFound(f"cannot find Visual Studio {version} (installed: {installed})")

    return version, exe
