"""
OIDC Gateway

OpenID Connect relying party service:

- auth: login, callback, logout flow and identity provider client
- config: environment-driven settings
- models: session and token models
- main: FastAPI application factory

See oidc_gateway.main for how to run the service.
"""

__version__ = "1.0.0"
