"""
Shared domain foundations for LedgerQuest modules.

- BaseService: logging, config, events and unit-of-work helpers
- BaseRepository: typed database access
- Domain exceptions
- Formulas: pure reward calculations

Import from the submodules (``ledgerquest.modules.shared.base_service``...);
this package does not re-export to keep import order acyclic.
"""
