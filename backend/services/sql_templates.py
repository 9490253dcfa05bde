"""Explorer SQL used for cohort identification and lookalike audiences (Base chain)."""

import re

from models.wallet import Vertical

# Top DEX traders on Aerodrome / Uniswap V3 over 30 days, dust (<$10k) excluded
DEFI_WHALE_SQL = """
SELECT
    sender_address                         AS wallet_address,
    COUNT(DISTINCT transaction_hash)       AS tx_count,
    SUM(usd_amount)                        AS total_volume_usd,
    COUNT(DISTINCT liquidity_pool_address) AS unique_pools,
    ARRAY_AGG(DISTINCT protocol)           AS protocols_used,
    MAX(block_timestamp)                   AS last_active
FROM base.dex.trades
WHERE block_timestamp >= CURRENT_TIMESTAMP - INTERVAL '30 DAY'
  AND usd_amount > 10000
  AND protocol IN ('aerodrome', 'uniswap_v3')
GROUP BY sender_address
HAVING SUM(usd_amount) > 500000
ORDER BY total_volume_usd DESC
LIMIT 3
"""

# Top accumulators of AI-vertical tokens (VIRTUAL, OLAS) by 30-day USD inflow
AI_WHALE_SQL = """
WITH ai_token_inflows AS (
    SELECT
        to_address                          AS wallet_address,
        token_address,
        token_symbol,
        SUM(amount)                         AS total_received,
        SUM(usd_amount)                     AS total_received_usd,
        COUNT(*)                            AS transfer_count,
        MAX(block_timestamp)                AS last_inflow
    FROM base.assets.erc20_token_transfers
    WHERE block_timestamp >= CURRENT_TIMESTAMP - INTERVAL '30 DAY'
      AND LOWER(token_address) IN (
          '0x0b3e328455c4059eeb9e3f84b5543f74e24e7e1b',
          '0x54330d28ca3357f294334bdc454a032e7f353416'
      )
      AND usd_amount > 0
    GROUP BY to_address, token_address, token_symbol
)
SELECT
    wallet_address,
    ARRAY_AGG(DISTINCT token_symbol)   AS ai_tokens_held,
    SUM(total_received_usd)            AS total_usd_accumulated,
    SUM(transfer_count)                AS total_transfers,
    COUNT(DISTINCT token_address)      AS token_diversity,
    MAX(last_inflow)                   AS last_active
FROM ai_token_inflows
GROUP BY wallet_address
HAVING SUM(total_received_usd) > 100000
ORDER BY total_usd_accumulated DESC
LIMIT 3
"""

COHORT_SQL: dict[Vertical, dict[str, str]] = {
    Vertical.DEFI: {
        "sql": DEFI_WHALE_SQL,
        "description": "Top 3 trading whales on Aerodrome & Uniswap V3 (>$500k 30d volume)",
    },
    Vertical.AI: {
        "sql": AI_WHALE_SQL,
        "description": "Top 3 AI token accumulators, VIRTUAL & OLAS (>$100k 30d inflow)",
    },
}

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

LOOKALIKE_SQL = """
WITH contract_interactors AS (
    SELECT DISTINCT from_address AS wallet_address
    FROM base.raw.transactions
    WHERE LOWER(to_address) = '{contract}'
      AND block_timestamp >= CURRENT_TIMESTAMP - INTERVAL '{interaction_days} DAY'
),
wallet_volume AS (
    SELECT
        from_address    AS wallet_address,
        SUM(usd_amount) AS total_volume_usd
    FROM base.assets.erc20_token_transfers
    WHERE block_timestamp >= CURRENT_TIMESTAMP - INTERVAL '30 DAY'
    GROUP BY from_address
)
SELECT
    ci.wallet_address,
    wv.total_volume_usd
FROM contract_interactors ci
JOIN wallet_volume wv ON ci.wallet_address = wv.wallet_address
WHERE wv.total_volume_usd > {min_volume_usd}
ORDER BY wv.total_volume_usd DESC
LIMIT {limit}
"""


def build_lookalike_sql(
    target_contract: str,
    *,
    interaction_days: int = 7,
    min_volume_usd: float = 10000,
    limit: int = 50,
) -> str:
    """Wallets that touched ``target_contract`` recently, ranked by 30-day transfer volume.

    The address is interpolated into SQL, so anything that is not a plain
    0x-prefixed 20-byte hex address is rejected.
    """
    contract = str(target_contract or "").strip()
    if not _ADDRESS_RE.match(contract):
        raise ValueError(f"Invalid contract address: {target_contract!r}")
    return LOOKALIKE_SQL.format(
        contract=contract.lower(),
        interaction_days=int(interaction_days),
        min_volume_usd=float(min_volume_usd),
        limit=int(limit),
    )
