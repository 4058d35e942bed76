"""Tests for the MultiStream backend."""
