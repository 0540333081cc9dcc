"""
API Package for Uptime Monitor

aiohttp server exposing the cycle trigger, scheduler control and the
read-only report views.
"""

from api.server import ApiServer, error_middleware

__all__ = ["ApiServer", "error_middleware"]
