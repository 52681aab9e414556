import json
from decimal import Decimal

import pytest

import main
from pricing.fixed_point import to_sqrt_fixed

POOL = {
    "sqrt_price": str(to_sqrt_fixed(Decimal("4200"), 6, 18)),
    "liquidity": "1800000000000000000",
    "tick": 0,
    "token0_decimals": 6,
    "token1_decimals": 18,
}
BOOK = {
    "symbol": "ETH/USDC",
    "bids": [["4225", "5"]],
    "asks": [["4230", "5"]],
}


@pytest.fixture
def snapshots(tmp_path):
    pool_path = tmp_path / "pool.json"
    book_path = tmp_path / "book.json"
    pool_path.write_text(json.dumps(POOL), encoding="utf-8")
    book_path.write_text(json.dumps(BOOK), encoding="utf-8")
    return ["--pool", str(pool_path), "--book", str(book_path)]


def _args(argv):
    return main._build_parser().parse_args(["evaluate", *argv])


def test_evaluate_prints_one_line_per_opportunity(snapshots):
    lines = main.evaluate_files(_args(snapshots))
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["direction"] == "A"
    assert payload["amount_out"] == "5"
    assert payload["fingerprint"].startswith("0x")
    assert Decimal(payload["pnl"]) > 0


def test_evaluate_output_is_deterministic(snapshots):
    assert main.evaluate_files(_args(snapshots)) == main.evaluate_files(_args(snapshots))


def test_gas_price_removes_opportunity(snapshots):
    assert main.evaluate_files(_args([*snapshots, "--gas-gwei", "40"])) == []


def test_main_prints_to_stdout(snapshots, capsys):
    main.main(["evaluate", *snapshots])
    out = capsys.readouterr().out.strip().splitlines()
    assert len(out) == 1
    assert json.loads(out[0])["direction"] == "A"


def test_bad_input_exits_with_code_2(tmp_path, capsys):
    missing = str(tmp_path / "missing.json")
    with pytest.raises(SystemExit) as exc:
        main.main(["evaluate", "--pool", missing, "--book", missing])
    assert exc.value.code == 2
    assert "not found" in capsys.readouterr().err


def test_malformed_pool_exits_with_code_2(tmp_path, snapshots):
    (tmp_path / "pool.json").write_text(json.dumps({"liquidity": 1}), encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        main.main(["evaluate", *snapshots])
    assert exc.value.code == 2


def test_book_with_bad_level_exits_with_code_2(tmp_path, snapshots, capsys):
    book = {**BOOK, "bids": [["4225", "5"], ["4224", "0"]]}
    (tmp_path / "book.json").write_text(json.dumps(book), encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        main.main(["evaluate", *snapshots])
    assert exc.value.code == 2
    assert "bids[1]" in capsys.readouterr().err
