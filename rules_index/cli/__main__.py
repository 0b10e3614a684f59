# =============================================================================
# rules_index/cli/__main__.py - Package Entry Point
# =============================================================================
#
# Enables running the CLI package itself as a module:
#     python -m rules_index.cli index --source-id <id>
#
# Delegates to the indexing CLI (index.py).
# =============================================================================

"""Allow ``python -m rules_index.cli`` execution."""

from rules_index.cli.index import main

main()
