"""Integration test package.

These tests exercise the proxy end to end: real SQLite storage, the
FastAPI host application and the Typer CLI, with the upstream network
replaced by a fake or by respx.
"""
