"""
Postduck Server Module

FastAPI applications for the local agent and the direct dispatch API.
"""

from .agent import AgentServer, create_agent_app, build_origin_regex
from .api import ApiServer, create_api_app

__all__ = [
    'AgentServer',
    'create_agent_app',
    'build_origin_regex',
    'ApiServer',
    'create_api_app',
]
