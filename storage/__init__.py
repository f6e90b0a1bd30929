"""
Storage Package.

Persistence for the exchange adapter subsystem.

Modules:
- database: Async engine, session factory, transaction scope
- models/: ORM models
- repositories/: Data access layer
"""
