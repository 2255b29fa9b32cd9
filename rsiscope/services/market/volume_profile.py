"""Price-based volume profile: buckets, POC and the 70% value area."""

from __future__ import annotations

import math
from typing import List, Optional, Sequence

from rsiscope.models.market_models import Candle, VolumeBucket, VolumeProfile, VolumeProfileLevels


VALUE_AREA_SHARE = 0.70


def _is_finite_candle(c: Candle) -> bool:
    return all(math.isfinite(v) for v in (c.high, c.low, c.volume, c.taker_buy_volume))


def _distribute(buckets: List[VolumeBucket], start: int, end: int, candle: Candle) -> None:
    """Spread a candle's volume evenly over buckets[start..end] (not weighted by overlap)."""
    span = end - start + 1
    if span <= 0 or candle.volume == 0:
        return

    per_bucket = candle.volume / span
    buy_ratio = candle.taker_buy_volume / candle.volume
    if math.isnan(buy_ratio):
        buy_per_bucket = sell_per_bucket = 0.0
    else:
        buy_per_bucket = per_bucket * buy_ratio
        sell_per_bucket = per_bucket * (1.0 - buy_ratio)

    for i in range(start, end + 1):
        buckets[i].volume += per_bucket
        buckets[i].buy_volume += buy_per_bucket
        buckets[i].sell_volume += sell_per_bucket


def calculate_volume_profile(candles: Sequence[Candle], bucket_count: int = 50) -> Optional[VolumeProfile]:
    """
    Partition [min low, max high] into `bucket_count` equal bins and accumulate volume.

    Returns None for an empty or non-finite input. A zero price range keeps every
    candle's volume in bucket 0 and reports POC at the midpoint, VAH/VAL at the extremes.
    """
    if not candles or bucket_count < 1:
        return None
    if not all(_is_finite_candle(c) for c in candles):
        return None

    min_price = min(c.low for c in candles)
    max_price = max(c.high for c in candles)
    total_volume = sum(c.volume for c in candles)

    if max_price == min_price:
        buckets = [VolumeBucket(price=min_price + 0.0) for _ in range(bucket_count)]
        for c in candles:
            _distribute(buckets, 0, 0, c)
        return VolumeProfile(
            buckets=buckets,
            poc=(min_price + max_price) / 2,
            vah=max_price,
            val=min_price,
            max_volume=max((b.volume for b in buckets), default=0.0),
            min_price=min_price,
            max_price=max_price,
        )

    bucket_size = (max_price - min_price) / bucket_count
    buckets = [VolumeBucket(price=min_price + i * bucket_size) for i in range(bucket_count)]

    for c in candles:
        start = max(0, math.floor((c.low - min_price) / bucket_size))
        end = min(bucket_count - 1, math.floor((c.high - min_price) / bucket_size))
        _distribute(buckets, start, end, c)

    max_volume = max(max(b.volume for b in buckets), 0.0)

    if total_volume == 0:
        return VolumeProfile(
            buckets=buckets,
            poc=(min_price + max_price) / 2,
            vah=max_price,
            val=min_price,
            max_volume=max_volume,
            min_price=min_price,
            max_price=max_price,
        )

    # First bucket with the highest volume wins
    poc_index = 0
    for i, b in enumerate(buckets):
        if b.volume > buckets[poc_index].volume:
            poc_index = i

    threshold = total_volume * VALUE_AREA_SHARE
    accumulated = buckets[poc_index].volume
    top = bottom = poc_index

    while accumulated < threshold and (bottom > 0 or top < bucket_count - 1):
        top_volume = buckets[top + 1].volume if top < bucket_count - 1 else -1.0
        bottom_volume = buckets[bottom - 1].volume if bottom > 0 else -1.0

        # Equal neighbours step down
        if top_volume > bottom_volume:
            top += 1
            accumulated += top_volume
        else:
            bottom -= 1
            accumulated += bottom_volume

    return VolumeProfile(
        buckets=buckets,
        poc=buckets[poc_index].price + bucket_size / 2,
        vah=buckets[top].price + bucket_size,
        val=buckets[bottom].price,
        max_volume=max_volume,
        min_price=min_price,
        max_price=max_price,
    )


def summarize_levels(profile: Optional[VolumeProfile]) -> VolumeProfileLevels:
    if profile is None:
        return VolumeProfileLevels()
    return VolumeProfileLevels(poc=profile.poc, vah=profile.vah, val=profile.val)
