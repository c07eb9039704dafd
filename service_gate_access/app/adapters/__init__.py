"""
Clients for the collaborators the service talks to over HTTP:

- auth_client: Identity provider token verification.
- actuator_client: Fire-and-forget gate open and pulse commands.
"""

from .auth_client import IdentityProviderClient
from .actuator_client import ActuatorClient
