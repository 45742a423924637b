import math
from datetime import date, datetime, timedelta, timezone

from marketanalytics.aggregator import (
    MarketplaceAggregator,
    aggregate_transactions,
    parse_currency_value,
    resolve_price,
    sort_records,
)
from marketanalytics.schemas import Transaction


def _tx(symbol, value, ts=datetime(2024, 4, 2, tzinfo=timezone.utc), project="4974"):
    return Transaction(
        timestamp=ts,
        event="BUY_ITEMS",
        project_id=project,
        currency_symbol=symbol,
        chain_id="137",
        currency_value_decimal=value,
    )


def test_single_sfl_transaction():
    records, warnings = aggregate_transactions([_tx("SFL", "1316777549196586000")], {"SFL": 1.23})
    assert warnings == []
    assert len(records) == 1
    assert records[0].transaction_count == 1
    assert math.isclose(records[0].total_volume_usd, 1.316777549196586 * 1.23, rel_tol=1e-12)
    assert math.isclose(records[0].total_volume_usd, 1.6196, abs_tol=1e-3)


def test_same_day_and_project_accumulates():
    txs = [
        _tx("MATIC", "700000000000000000", ts=datetime(2024, 4, 2, 0, 0, tzinfo=timezone.utc)),
        _tx("MATIC", "200000000000000000", ts=datetime(2024, 4, 2, 10, 0, tzinfo=timezone.utc)),
    ]
    records = MarketplaceAggregator().aggregate(txs, {"MATIC": 0.408257})
    assert len(records) == 1
    assert records[0].date == date(2024, 4, 2)
    assert records[0].transaction_count == 2
    assert math.isclose(records[0].total_volume_usd, 0.3674313, rel_tol=1e-9)


def test_missing_price_produces_no_record():
    records, warnings = aggregate_transactions([_tx("USDC", "1000000")], {"MATIC": 0.408257})
    assert records == []
    assert len(warnings) == 1


def test_invalid_value_is_skipped_without_touching_other_records():
    good = _tx("MATIC", "700000000000000000")
    bad_value = _tx("MATIC", "invalid_value")
    bad_symbol = _tx("DOGE", "100000000000000000")
    records, warnings = aggregate_transactions([good, bad_value, bad_symbol], {"MATIC": 0.5})
    assert len(warnings) == 2
    assert len(records) == 1
    assert records[0].transaction_count == 1
    assert math.isclose(records[0].total_volume_usd, 0.35)


def test_additivity_over_many_transactions():
    values = [str(n * 10**17) for n in range(1, 11)]
    prices = {"SFL": 1.23, "MATIC": 0.408257}
    txs = [_tx("SFL" if i % 2 else "MATIC", v) for i, v in enumerate(values)]
    records, _ = aggregate_transactions(txs, prices)
    expected = sum(int(v) / 1e18 * prices[tx.currency_symbol] for v, tx in zip(values, txs))
    assert len(records) == 1
    assert records[0].transaction_count == len(txs)
    assert math.isclose(records[0].total_volume_usd, expected, rel_tol=1e-9)


def test_normalized_symbol_fallback():
    records, _ = aggregate_transactions([_tx("USDC.E", "2000000000000000000")], {"USDC": 1.0})
    assert len(records) == 1
    assert math.isclose(records[0].total_volume_usd, 2.0)


def test_exact_symbol_wins_over_normalized():
    assert resolve_price("USDC.E", {"USDC.E": 0.99, "USDC": 1.0}) == 0.99
    assert resolve_price("usdc.e", {"USDC": 1.0}) == 1.0
    assert resolve_price("BTC", {"USDC": 1.0}) is None


def test_zero_price_counts_transaction():
    records, warnings = aggregate_transactions([_tx("SFL", "1000000000000000000")], {"SFL": 0.0})
    assert warnings == []
    assert records[0].transaction_count == 1
    assert records[0].total_volume_usd == 0.0


def test_keys_split_by_utc_day_and_project():
    tz_plus2 = timezone(timedelta(hours=2))
    txs = [
        _tx("SFL", "1000000000000000000", ts=datetime(2024, 4, 15, 1, 0, tzinfo=tz_plus2)),  # 2024-04-14 UTC
        _tx("SFL", "1000000000000000000", ts=datetime(2024, 4, 15, 12, 0, tzinfo=timezone.utc)),
        _tx("SFL", "1000000000000000000", ts=datetime(2024, 4, 15, 13, 0, tzinfo=timezone.utc), project="7"),
    ]
    records = sort_records(aggregate_transactions(txs, {"SFL": 1.0})[0])
    assert [(r.date, r.project_id, r.transaction_count) for r in records] == [
        (date(2024, 4, 14), "4974", 1),
        (date(2024, 4, 15), "4974", 1),
        (date(2024, 4, 15), "7", 1),
    ]


def test_parse_currency_value():
    assert parse_currency_value("1316777549196586000") == parse_currency_value(" 1316777549196586000 ")
    assert float(parse_currency_value("1000000000000000000")) == 1.0
    for bad in ["", "abc", "NaN", "Infinity", "1,000", "1e9999999", "1e330"]:
        try:
            parse_currency_value(bad)
        except ValueError:
            continue
        raise AssertionError(f"{bad!r} should not parse")


def test_out_of_range_values_are_skipped():
    txs = [
        _tx("SFL", "1e9999999"),
        _tx("SFL", "1e330"),
        _tx("SFL", "1000000000000000000"),
    ]
    records, warnings = aggregate_transactions(txs, {"SFL": 1.0})
    assert len(warnings) == 2
    assert records[0].transaction_count == 1
    assert records[0].total_volume_usd == 1.0


def test_overflowing_volume_is_skipped():
    txs = [_tx("SFL", "1e300"), _tx("SFL", "1000000000000000000")]
    records, warnings = aggregate_transactions(txs, {"SFL": 1e30})
    assert len(warnings) == 1
    assert records[0].transaction_count == 1
    assert math.isfinite(records[0].total_volume_usd)
