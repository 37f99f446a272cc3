"""Backend providers for fnm and nvm."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from nodeswitch.backends.base import BackendKind, BackendProvider
from nodeswitch.backends.fnm import FnmBackend
from nodeswitch.backends.nvm import NvmBackend
from nodeswitch.process_runner import ProcessRunner

if TYPE_CHECKING:
    from nodeswitch.settings import AppSettings

__all__ = [
    "BackendKind",
    "BackendProvider",
    "FnmBackend",
    "NvmBackend",
    "create_backend",
]


def create_backend(
    kind: BackendKind,
    settings: Optional[AppSettings] = None,
    runner: Optional[ProcessRunner] = None,
) -> BackendProvider:
    """
    Build an unbound provider for ``kind``, applying user overrides from settings.

    Call ``detect()`` (or ``detect_in_wsl()``) and ``bind()`` on the result to get
    a provider that can run commands.
    """
    if kind is BackendKind.FNM:
        return FnmBackend(
            executable=settings.fnm_path if settings else None,
            fnm_dir=settings.fnm_dir if settings else None,
            node_dist_mirror=settings.node_dist_mirror if settings else None,
            runner=runner,
            install_script_sha256=settings.fnm_install_sha256 if settings else None,
        )
    return NvmBackend(
        executable=settings.nvm_path if settings else None,
        runner=runner,
        install_script_sha256=settings.nvm_install_sha256 if settings else None,
    )
