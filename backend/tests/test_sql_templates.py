import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from models.wallet import Vertical  # noqa: E402
from services.sql_templates import COHORT_SQL, build_lookalike_sql  # noqa: E402

CONTRACT = "0xCF77A3BA9A5CA399B7C97C74D54E5B1BEB874E43"


def test_lookalike_sql_interpolates_lowercased_contract():
    sql = build_lookalike_sql(CONTRACT, interaction_days=3, limit=10)

    assert "'0xcf77a3ba9a5ca399b7c97c74d54e5b1beb874e43'" in sql
    assert "INTERVAL '3 DAY'" in sql
    assert "LIMIT 10" in sql
    assert "> 10000.0" in sql


@pytest.mark.parametrize(
    "contract",
    ["", "0x123", "cf77a3ba9a5ca399b7c97c74d54e5b1beb874e43", "0x' OR 1=1 --" + "a" * 30],
)
def test_lookalike_sql_rejects_invalid_addresses(contract):
    with pytest.raises(ValueError):
        build_lookalike_sql(contract)


def test_cohort_queries_cover_tracked_verticals():
    assert set(COHORT_SQL) == {Vertical.DEFI, Vertical.AI}
    assert "base.dex.trades" in COHORT_SQL[Vertical.DEFI]["sql"]
    assert "0x0b3e328455c4059eeb9e3f84b5543f74e24e7e1b" in COHORT_SQL[Vertical.AI]["sql"]
