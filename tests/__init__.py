"""
Test suite for the Todo Sync application.

This package contains:
- unit/: Models, events, rooms, registry, auth and the client-side pieces
  (cache, connection manager, store, REST client) in isolation
- integration/: REST API tests through the Flask test client, including the
  change events the registry delivers to simulated realtime sessions
"""
