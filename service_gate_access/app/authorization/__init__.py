"""
Gate authorization package.

Decides whether a caller may actuate a gate from their own permission
map, then hands authorized requests to the actuator.
"""

from .authorizer import GateAuthorizer
