"""Summarise the status of many BorgBackup repositories in one report."""

from importlib import import_module

__version__ = "0.3.0"
PACKAGE_NAME = "borgreport"
PROJECT_URL = "https://github.com/bbx0/borgreport"

_SUBMODULES = (
    "core",
    "domain",
    "integrations",
    "application",
    "interfaces",
)

for _module_name in _SUBMODULES:
    globals()[_module_name] = import_module(f"{__name__}.{_module_name}")

__all__ = ["PACKAGE_NAME", "PROJECT_URL", "__version__", *_SUBMODULES]
