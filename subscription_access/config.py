"""
Process-level configuration for the subscription access engine.

Admin-editable knobs (trial length, grace period, limits) are NOT here; they
live in the system settings store and are parsed by subscription_access.policy.
"""

import os
from typing import Optional

# Policy cache
REDIS_URL: Optional[str] = os.getenv("REDIS_URL") or None
POLICY_CACHE_TTL_SECONDS = int(os.getenv("SUBSCRIPTION_POLICY_CACHE_TTL_SECONDS", "60"))

# Reconciliation worker
RECONCILE_INTERVAL_SECONDS = int(os.getenv("SUBSCRIPTION_RECONCILE_INTERVAL_SECONDS", "3600"))
RECONCILE_BATCH_SIZE = int(os.getenv("SUBSCRIPTION_RECONCILE_BATCH_SIZE", "500"))

# Bounded retries when two activations race for the same user
ACTIVATION_MAX_ATTEMPTS = 3
