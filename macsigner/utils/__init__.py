"""Shared utilities for MacSigner."""
