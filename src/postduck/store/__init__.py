"""
Postduck Store Module

In-memory workspace store with JSON snapshot persistence.
"""

from .workspace import WorkspaceStore, DEFAULT_WORKSPACE_ID, DEFAULT_ENVIRONMENT_ID

__all__ = [
    'WorkspaceStore',
    'DEFAULT_WORKSPACE_ID',
    'DEFAULT_ENVIRONMENT_ID',
]
