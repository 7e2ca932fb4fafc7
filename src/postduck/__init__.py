"""
Postduck

API request authoring and execution: interpolation, auth sessions, dispatch
through a direct proxy or a local companion agent, and code generation.
"""

__version__ = '0.1.0'
