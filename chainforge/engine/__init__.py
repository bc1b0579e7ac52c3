"""Module __init__: drives chains through their connection lifecycle."""
#
# MODULES IN THIS PACKAGE:
# - **registry.py**: Shared chain snapshots keyed by chain id
# - **connector.py**: Ascending-position establishment with rollback
# - **disconnector.py**: Descending-position, best-effort teardown
# - **orchestrator.py**: The inbound API composing all of the above
#
# WORKFLOW:
# create_chain -> connect (hop 0, 1, ... n) -> health / watch -> disconnect (hop n ... 0)
#
