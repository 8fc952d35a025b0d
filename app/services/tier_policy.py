"""
Tier policy: question quotas and feature gates per tier.

Pure lookups with no persistence, consulted synchronously before writes.
"""

FREE = 'free'
PREMIUM = 'premium'

TIER_LIMITS = {
    FREE: 10,
    PREMIUM: 50,
}

PREMIUM_FEATURES = frozenset({
    'template_import',
    'magic_link_login',
    'custom_colors',
})

# Free accounts get the base product only
TIER_FEATURES = {
    FREE: frozenset(),
    PREMIUM: PREMIUM_FEATURES,
}


def normalize_tier(tier: str) -> str:
    """Unknown or missing tiers are treated as free"""
    if tier and tier.lower() in TIER_LIMITS:
        return tier.lower()
    return FREE


def limit_for(tier: str) -> int:
    return TIER_LIMITS[normalize_tier(tier)]


def check_quota(current_count: int, tier: str, adding: int = 1) -> bool:
    """True if `adding` more questions fit under the tier's limit"""
    return current_count + adding <= limit_for(tier)


def has_feature(tier: str, feature: str) -> bool:
    return feature in TIER_FEATURES[normalize_tier(tier)]
