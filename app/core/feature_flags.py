"""
Feature Flags System
Optional behaviours switched on or off through ENABLE_<FEATURE> environment variables
"""

import os
from typing import Dict


class FeatureFlags:
    """Feature flags read from the environment on every check"""

    # Feature names
    FINANCIAL_BACKFILL = "FINANCIAL_BACKFILL"
    AI_ANALYSIS = "AI_ANALYSIS"

    DEFAULTS = {
        FINANCIAL_BACKFILL: True,
        AI_ANALYSIS: True,
    }

    @staticmethod
    def is_enabled(feature: str) -> bool:
        """
        Check if a feature is enabled

        Args:
            feature: Feature name (e.g., "FINANCIAL_BACKFILL")

        Returns:
            True if feature is enabled
        """
        env_var = f"ENABLE_{feature.upper()}"
        default = "true" if FeatureFlags.DEFAULTS.get(feature, True) else "false"
        return os.getenv(env_var, default).strip().lower() in ("true", "1", "yes")

    @staticmethod
    def get_all_features_status() -> Dict[str, bool]:
        return {feature: FeatureFlags.is_enabled(feature) for feature in FeatureFlags.DEFAULTS}


# Convenience functions
def is_financial_backfill_enabled() -> bool:
    """Check if GET /sessions reconciles past sessions with the financial ledger"""
    return FeatureFlags.is_enabled(FeatureFlags.FINANCIAL_BACKFILL)


def is_ai_analysis_enabled() -> bool:
    """Check if session-notes analysis is enabled"""
    return FeatureFlags.is_enabled(FeatureFlags.AI_ANALYSIS)
