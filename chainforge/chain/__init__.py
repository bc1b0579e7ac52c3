"""Module __init__: the chain data model, its validator and its builder."""
#
# MODULES IN THIS PACKAGE:
# - models.py: HopKind, Hop, Chain and their status enums (immutable snapshots)
# - configs.py: Per-kind hop configuration (pydantic, extras pass through)
# - validator.py: Pure checks run before any network activity
# - builder.py: Specs -> Disconnected Chain with Pending hops
#
