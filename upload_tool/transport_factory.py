"""
Factory for creating upload transports.

Simplifies backend selection and initialization.
"""

from shared.config import UploadConfig
from shared.models import Backend
from .transport import UploadTransport
from .vimeo_transport import VimeoTransport
from .local_transport import LocalTransport


class TransportFactory:
    """Factory for creating transport instances."""

    @staticmethod
    def create(config: UploadConfig) -> UploadTransport:
        """
        Create the transport for ``config.backend``.

        Raises:
            ValueError: If the backend is not supported
        """
        if config.backend == Backend.VIMEO:
            return VimeoTransport(config)

        elif config.backend == Backend.LOCAL:
            return LocalTransport(config.local_path)

        else:
            raise ValueError(f"Unknown backend: {config.backend}")

    @staticmethod
    def get_backend_name(backend: Backend) -> str:
        """Get human-readable backend name."""
        names = {
            Backend.VIMEO: "Vimeo",
            Backend.LOCAL: "Local directory",
        }
        return names.get(backend, "Unknown")

    @staticmethod
    def get_backend_description(backend: Backend) -> str:
        descriptions = {
            Backend.VIMEO:
                "Vimeo API - resumable streaming uploads, needs an access token with upload scope",
            Backend.LOCAL:
                "Local directory - self-hosted store on a local drive or NAS mount",
        }
        return descriptions.get(backend, "Unknown backend")
