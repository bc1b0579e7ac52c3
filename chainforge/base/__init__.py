"""Module __init__: foundational pieces shared by the whole orchestrator."""
#
# PURPOSE:
# Marks the "base" directory as a Python package containing components the
# rest of ChainForge depends on.
#
# WHAT'S IN THIS MODULE:
# - config.py: Timeouts, health thresholds, provider location, logging setup
# - exceptions.py: Typed validation / hop / teardown / lookup errors
#
