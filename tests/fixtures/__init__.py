"""
Pytest fixtures for the RequestKit test suite.

- http_mocking: MockTransport routing, ranged resources, and a configured
  ``HttpxSessionManager`` bound to the mock transport
"""
