"""
ccg — cold-chain git.

Encrypted git bundles on content-addressed storage, anchored on-chain.
The ledger holds only a pointer. The bytes live elsewhere, sealed.
"""

import os

__version__ = "0.1.0"

CCG_HOME = os.environ.get("CCG_HOME", "~/.ccg")
