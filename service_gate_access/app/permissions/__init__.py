"""
Permission grant package.

Turns matched gate groups into per-gate permission entries and merges
them into a user's permission map without ever dropping or unverifying
an existing entry.
"""

from .grants import PermissionGrantEngine, PermissionDelta, PermissionMap
