"""Kernel utilities: idempotency keys, deterministic hashing, aggregate locks."""
