"""
Tests package - Test suite for the vault webhook.

Contains:
- unit/: Unit tests for individual components
- fixtures/: Sample bindings, pods and admission reviews
- utils/: Fakes and certificate helpers shared by the tests
"""
