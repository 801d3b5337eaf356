"""
Core Layer

Cross-cutting building blocks: configuration, logging, exceptions,
resilience primitives and process teardown hooks.
"""
