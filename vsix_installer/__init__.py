from .extensions import ExtensionError, ExtensionService, InstalledExtension, PackageDescriptor, SettingsScope
from .registry import RegistryStore, VersionNotFound, WindowsRegistry, resolve_version

__version__ = "1.0.0"
