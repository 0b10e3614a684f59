"""Rules store implementations."""

from rules_index.providers.store.memory_rules_store import MemoryRulesStore
from rules_index.providers.store.sqlite_rules_store import SQLiteRulesStore

__all__ = ["MemoryRulesStore", "SQLiteRulesStore"]
