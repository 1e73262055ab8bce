"""
API test package for Todo Sync.

This package contains tests for the REST API endpoints.
Tests use the Flask test client and demonstrate:
- CRUD operation testing
- Input validation testing
- Realtime fan-out checks through recording sessions
- Response envelope validation
"""
