"""
LedgerQuest Test Suite
======================

Test Organization
-----------------
- tests/unit/          : Pure logic and infrastructure pieces, no database
- tests/integration/   : Services against a real database (SQLite by default,
                         PostgreSQL via testcontainers with
                         LEDGERQUEST_TEST_BACKEND=postgres)

Tests follow Arrange, Act, Assert.
"""
