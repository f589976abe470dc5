"""
Mini-app HTTP API.
"""
from api.server import ApiServer, start_api_server

__all__ = ['ApiServer', 'start_api_server']
