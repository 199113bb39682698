"""Transactional email dispatcher that records every delivery attempt.

The package sends one email per request through an SMTP transport, stores
the outcome (``SENT`` or ``ERROR``) in SQLite and exposes the history over a
FastAPI REST API.

Example:
    Basic usage with the FastAPI application::

        from email_dispatch.core import EmailDispatchCore
        from email_dispatch.api import create_app
        from email_dispatch.transport import SMTPTransport

        core = EmailDispatchCore(transport=SMTPTransport("smtp.local", 25), db_path="/data/emails.db")
        app = create_app(core, api_token="secret")
"""

__version__ = "0.1.0"
