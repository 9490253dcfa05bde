import json
import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from config import ConfigurationError  # noqa: E402
from models.wallet import Vertical  # noqa: E402
from services.lookups import DEFAULT_PERSONA, ProtocolDirectory, SocialDirectory  # noqa: E402
from services.roster import Watchlist, load_wallets, parse_wallets  # noqa: E402

PROJECT_DATA = BACKEND_ROOT.parent / "data"


def test_parse_wallets_normalizes_and_dedups():
    wallets = parse_wallets(
        [
            {"address": "0xABC0000000000000000000000000000000000001", "vertical": "DeFi", "volume_30d_usd": 2e9},
            {"address": "0xabc0000000000000000000000000000000000001", "vertical": "AI"},
            {"address": "0xdef0000000000000000000000000000000000002", "vertical": "AI", "label": "AI Whale"},
        ]
    )

    assert [w.address for w in wallets] == [
        "0xabc0000000000000000000000000000000000001",
        "0xdef0000000000000000000000000000000000002",
    ]
    assert wallets[0].vertical == Vertical.DEFI
    assert wallets[0].label == "0xabc00000..."
    assert wallets[0].volume_30d_usd == 2e9
    assert wallets[0].known_contracts == set()
    assert wallets[0].cursor is None
    assert wallets[1].label == "AI Whale"
    assert wallets[1].volume_30d_usd is None


@pytest.mark.parametrize(
    "raw",
    [
        {"address": "0x1"},
        [],
        [{"vertical": "DeFi"}],
        [{"address": "0x1", "vertical": "Gaming"}],
    ],
)
def test_parse_wallets_rejects_bad_rosters(raw):
    with pytest.raises(ConfigurationError):
        parse_wallets(raw)


def test_load_wallets_missing_file_is_fatal(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_wallets(tmp_path / "missing.json")


def test_load_wallets_malformed_json_is_fatal(tmp_path):
    path = tmp_path / "wallets.json"
    path.write_text("[{", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_wallets(path)


def test_bundled_configuration_loads():
    wallets = load_wallets(PROJECT_DATA / "tracked_wallets.json")
    protocols = ProtocolDirectory.load(PROJECT_DATA / "contracts.json")
    socials = SocialDirectory.load(PROJECT_DATA / "social_identities.json")

    assert len(wallets) == 6
    assert {w.vertical for w in wallets} == {Vertical.DEFI, Vertical.AI}
    assert protocols.identify("0xcF77a3Ba9A5CA399B7c97c74d54e5b1Beb874E43") == "Aerodrome"
    assert protocols.identify("0x2626664c2603336E57B271c5C0b26F421741e481") == "Uniswap V3"
    assert socials.resolve(wallets[0].address).name == "vitalik.eth"


def test_protocol_directory_from_config():
    directory = ProtocolDirectory.from_config(
        {
            "verticals": {
                "DeFi": {
                    "projects": {
                        "aerodrome": {"router": "0xAAA", "contracts": {"voter": "0xBBB"}},
                        "moonwell": {"label": "Moonwell", "core": "0xCCC"},
                    }
                },
                "AI": {"projects": {"olas": {"label": "Olas", "token_address": "0xDDD"}}},
            }
        }
    )

    assert len(directory) == 4
    assert directory.identify("0xaaa") == "aerodrome"
    assert directory.identify("0xBBB") == "aerodrome"
    assert directory.identify("0xccc") == "Moonwell"
    assert directory.identify("0xddd") == "Olas"
    assert directory.identify("0xeee") is None
    assert directory.identify("") is None


def test_social_directory_defaults(tmp_path):
    directory = SocialDirectory.load(tmp_path / "absent.json")

    identity = directory.resolve("0xabc")
    assert identity.name is None
    assert identity.persona == DEFAULT_PERSONA


def test_watchlist_persists_changes(tmp_path):
    path = tmp_path / "watchlist.json"
    watchlist = Watchlist.load(path)

    assert watchlist.items() == []
    assert watchlist.add("0xABC") == ["0xabc"]
    assert watchlist.add("0xabc") == ["0xabc"]
    assert watchlist.add("0xdef") == ["0xabc", "0xdef"]
    assert json.loads(path.read_text(encoding="utf-8")) == ["0xabc", "0xdef"]

    assert watchlist.remove("0xABC") == ["0xdef"]
    assert Watchlist.load(path).items() == ["0xdef"]


def test_watchlist_rejects_non_array(tmp_path):
    path = tmp_path / "watchlist.json"
    path.write_text('{"a": 1}', encoding="utf-8")

    with pytest.raises(ConfigurationError):
        Watchlist.load(path)
