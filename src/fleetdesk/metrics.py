from prometheus_client import Counter

invite_codes_generated_total = Counter(
    "fleetdesk_invite_codes_generated_total",
    "Number of invite codes generated",
    ["kind"],
)

invite_code_redemptions_total = Counter(
    "fleetdesk_invite_code_redemptions_total",
    "Invite code redemption attempts by outcome",
    ["kind", "outcome"],
)

expired_invite_codes_purged_total = Counter(
    "fleetdesk_expired_invite_codes_purged_total",
    "Number of expired, unused invite codes deleted by the sweep",
    ["kind"],
)
