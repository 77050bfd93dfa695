"""Storage and domain layer for the multi-tenant course commerce platform."""
