"""Tests for core infrastructure (service results, health check)."""
