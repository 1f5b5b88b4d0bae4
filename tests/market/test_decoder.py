"""Tests for trade and promotion log decoding."""

import pytest

from sportfun_market.market.decoder import (
    DecodeError,
    EventKind,
    classify_log,
    decode_promotion_log,
    decode_token_ids,
    decode_trade_log,
    log_block_number,
    price_per_share,
)

ONE_SHARE = 10**18
TS = 1_754_100_000_000


class TestPricePerShare:
    def test_whole_share(self) -> None:
        assert price_per_share(5_000_000, ONE_SHARE) == 5_000_000

    def test_rounds_down(self) -> None:
        assert price_per_share(1, 3) == 333_333_333_333_333_333

    def test_no_shares(self) -> None:
        assert price_per_share(5_000_000, 0) is None


class TestDecodeTradeLog:
    """Tests for buy/sell decoding."""

    def test_buy(self, trade_log) -> None:
        log = trade_log([7], [2 * ONE_SHARE], [10_000_000])
        (event,) = decode_trade_log(log, TS)

        assert event.token_id == "7"
        assert event.share_amount == 2 * ONE_SHARE
        assert event.price_usdc_per_share == 5_000_000
        assert event.timestamp_ms == TS

    def test_sell_is_negative(self, trade_log) -> None:
        log = trade_log([7], [ONE_SHARE], [4_000_000], sell=True)
        (event,) = decode_trade_log(log, TS)

        assert classify_log(log) is EventKind.SELL
        assert event.share_amount == -ONE_SHARE
        assert event.price_usdc_per_share == 4_000_000

    def test_multiple_tokens_and_zero_id(self, trade_log) -> None:
        log = trade_log([7, 0, 9], [ONE_SHARE, ONE_SHARE, 0], [1_000_000, 1_000_000, 0])
        events = decode_trade_log(log, TS)

        assert [e.token_id for e in events] == ["7", "9"]
        assert events[1].price_usdc_per_share is None

    def test_malformed_data(self, trade_log) -> None:
        log = trade_log([7], [ONE_SHARE], [1])
        log["data"] = "0x1234"
        with pytest.raises(DecodeError):
            decode_trade_log(log, TS)

    def test_missing_data(self, trade_log) -> None:
        log = trade_log([7], [ONE_SHARE], [1])
        del log["data"]
        with pytest.raises(DecodeError):
            decode_trade_log(log, TS)

    def test_other_topics_yield_nothing(self, promotion_log) -> None:
        assert decode_trade_log(promotion_log([7]), TS) == []
        assert decode_trade_log({"topics": []}, TS) == []

    def test_bytes_topic(self, trade_log) -> None:
        log = trade_log([7], [ONE_SHARE], [1])
        log["topics"] = [bytes.fromhex(t.removeprefix("0x")) for t in log["topics"]]
        assert classify_log(log) is EventKind.BUY


class TestPromotionAndIds:
    def test_promotion(self, promotion_log) -> None:
        log = promotion_log([11, 0, 12])
        assert classify_log(log) is EventKind.PROMOTION
        assert decode_promotion_log(log) == ["11", "12"]

    def test_token_ids(self, trade_log, promotion_log) -> None:
        assert decode_token_ids(trade_log([3, 4], [1, 1], [1, 1], sell=True)) == ["3", "4"]
        assert decode_token_ids(promotion_log([5])) == ["5"]
        assert decode_token_ids({"topics": ["0x" + "00" * 32]}) == []

    def test_block_number(self, trade_log) -> None:
        assert log_block_number(trade_log([1], [1], [1], block_number=321)) == 321
        with pytest.raises(DecodeError):
            log_block_number({})
