"""Test suite for the offline cache proxy.

Unit tests cover the cache storages, the network wrapper, the lifecycle
state machine and every proxy handler; integration tests drive the FastAPI
host and the CLI. To run the tests, execute `pytest` from the project root.
"""
