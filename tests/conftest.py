import typing as t
import zipfile
from contextlib import contextmanager
from pathlib import Path

import pytest
import requests

from vsix_installer.extensions import ExtensionError, InstalledExtension, PackageDescriptor, SettingsScope
from vsix_installer.registry import VS_EXE_VALUE, VS_KEY, VS_SETUP_KEY

MANIFEST_2011 = """<?xml version="1.0" encoding="utf-8"?>
<PackageManifest Version="2.0.0" xmlns="http://schemas.microsoft.com/developer/vsx-schema/2011">
  <Metadata>
    <Identity Id="{id}" Version="{version}" Language="en-US" Publisher="Contoso" />
    <DisplayName>{name}</DisplayName>
  </Metadata>
</PackageManifest>
"""

MANIFEST_2010 = """<?xml version="1.0" encoding="utf-8"?>
<Vsix Version="1.0.0" xmlns="http://schemas.microsoft.com/developer/vsx-schema/2010">
  <Identifier Id="{id}">
    <Name>{name}</Name>
    <Author>Contoso</Author>
    <Version>{version}</Version>
  </Identifier>
</Vsix>
"""


class FakeRegistry:
    """Version keys mapped to their EnvironmentPath value."""

    def __init__(self, exes: t.Dict[str, t.Optional[str]]):
        self.exes = exes

    def list_children(self, path):
        if path == VS_KEY:
            return list(self.exes)
        return []

    def get_value(self, path, name):
        for version, exe in self.exes.items():
            if path == f"{VS_KEY}\\{version}\\{VS_SETUP_KEY}" and name == VS_EXE_VALUE:
                return exe
        return None


class FakeResponse:
    def __init__(self, content=b"PK", status_code=200, headers=None):
        self.content = content
        self.status_code = status_code
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


class FakeService:
    def __init__(self, version="14.0", installed=None, fail_on=None):
        self.version = version
        self.installed = installed
        self.fail_on = fail_on
        self.calls = list()
        self.scope: t.Optional[SettingsScope] = None

    def parse_package(self, path):
        self.calls.append(("parse_package", path))
        if self.fail_on == "parse_package":
            raise ValueError("bad package")
        return PackageDescriptor("Contoso.Ext", "Contoso Extension", "2.0", Path(path))

    @contextmanager
    def open_scope(self, exe_path, root_suffix):
        self.calls.append(("open_scope", exe_path, root_suffix))
        self.scope = SettingsScope(exe_path, root_suffix)
        try:
            yield self.scope
        finally:
            self.scope.closed = True
            self.calls.append(("close_scope",))

    def find_installed(self, scope, identifier):
        assert not scope.closed
        self.calls.append(("find_installed", identifier))
        return self.installed

    def uninstall(self, scope, installed):
        assert not scope.closed
        self.calls.append(("uninstall", installed.identifier))
        if self.fail_on == "uninstall":
            raise ExtensionError("uninstall failed")

    def install(self, scope, package, per_machine):
        assert not scope.closed
        self.calls.append(("install", package.identifier, per_machine))
        if self.fail_on == "install":
            raise ExtensionError("install failed")

    def call_names(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def registry():
    return FakeRegistry(
        {
            "10.0": r"C:\VS10\Common7\IDE\devenv.exe",
            "12.0": r"C:\VS12\Common7\IDE\devenv.exe",
            "14.0": r"C:\VS14\Common7\IDE\devenv.exe",
            "abc": r"C:\nowhere\devenv.exe",
        }
    )


@pytest.fixture
def installed():
    return InstalledExtension("Contoso.Ext", "Contoso Extension", "1.0")


@pytest.fixture
def make_vsix(tmp_path):
    def make(filename="ext.vsix", manifest=MANIFEST_2011, **identity) -> Path:
        identity.setdefault("id", "Contoso.Ext")
        identity.setdefault("name", "Contoso Extension")
        identity.setdefault("version", "2.0")
        path = tmp_path / filename
        with zipfile.ZipFile(path, "w") as zip:
            zip.writestr("extension.vsixmanifest", manifest.format(**identity))
            zip.writestr("[Content_Types].xml", "<Types/>")
        return path

    return make
