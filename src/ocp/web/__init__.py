"""Web package for the offline cache proxy.

This package hosts the proxy behind a FastAPI application: every request
that is not one of the ``/_ocp`` management endpoints is forwarded to the
configured upstream origin through the active proxy instance.

To start the web server from the CLI use:
    ocp serve --port 8000
"""
