"""Toolchain registry for boardlink."""

from boardlink.toolchain import Toolchain

_REGISTRY: dict[str, Toolchain] = {}


def register_toolchain(toolchain: Toolchain) -> None:
    """Register a toolchain by its name."""
    _REGISTRY[toolchain.name] = toolchain


def get_toolchain(name: str) -> Toolchain | None:
    """Get a toolchain by name."""
    return _REGISTRY.get(name)


def list_toolchains() -> list[Toolchain]:
    """Return all registered toolchains."""
    return list(_REGISTRY.values())


# Auto-import toolchain modules so they self-register.
from boardlink.toolchains import arduino as _arduino  # noqa: F401, E402
from boardlink.toolchains import avrdude as _avrdude  # noqa: F401, E402
