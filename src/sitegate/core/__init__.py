"""
Core business logic components.

This package contains the data access and disclosure components:
- Fixed-window rate limiting over a key-value store
- Retry classification and resilient execution
- PostgREST backend client and connectivity monitor
- Field masking, audit logging and the disclosure gate
- Metrics collection
"""
