from .backend import RenderingBackend

__all__ = ["RenderingBackend"]
