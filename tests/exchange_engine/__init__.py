"""
Tests for the exchange engine.

- Order translation and symbol parsing
- Secret codec
- Credential lifecycle
- Registry onboarding
- Bitpin and Nobitex adapters against a mocked transport
"""
