from .local_store import LocalFileStore

__all__ = ["LocalFileStore"]
