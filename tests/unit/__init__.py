"""Unit tests for server and client components in isolation."""
