"""filevault: file storage API with expiring, password-protected share links."""

from .app import create_app
from .settings import Settings

__all__ = ['Settings', 'create_app']
