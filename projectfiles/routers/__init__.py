"""API routers"""
from projectfiles.routers import files, projects, storage, uploads, websocket

__all__ = ["files", "projects", "storage", "uploads", "websocket"]
