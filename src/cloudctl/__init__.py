"""cloudctl -- command-line client for the cloud API.

The CLI authenticates with an OAuth 2.0 / OpenID Connect authorization server
using the authorization-code flow with PKCE, caches the resulting token set
on disk, and refreshes or re-acquires it transparently on later invocations.

Typical workflow::

    cloudctl auth     # log in through the browser
    cloudctl me       # call the API with the cached credential

Modules:
    app: Typer application and CLI entry point.
    auth: Credential lifecycle, browser login, and the OIDC adapter.
    client: HTTP client for the cloud API.
    config: Settings resolution and config directory handling.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    models: Pydantic models shared across the package.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
