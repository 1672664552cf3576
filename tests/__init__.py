"""
Test suite for linkio.

Unit tests run against fakes (FakeReactor, FakeConnection, mocked pyserial);
integration tests use loopback sockets and a private reactor thread.
"""
