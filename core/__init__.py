"""
Core Package

Contains the exchange-agnostic core of the whale tracker:
- ExchangeAdapter: Abstract base class every exchange wire protocol implements
- AdapterRegistry: Resolves configured exchange names to adapter instances
- Schemas: Pydantic models for the canonical trade record and derived state
- Config, logging and the error taxonomy shared by every layer

Nothing in here opens a socket; the engine package drives the adapters.
"""
