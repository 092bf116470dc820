from __future__ import annotations

import asyncio
from typing import Dict, List

import pytest

from coupon_capture.parsing.address import (
    EXCLUDED_SCORE,
    pick_address,
    pick_phone,
    rank_address_candidates,
    score_address_candidate,
)
from coupon_capture.parsing.models import GeoPoint, OcrLine


def _lines(*texts: str) -> List[OcrLine]:
    return [OcrLine(text=text) for text in texts]


def test_offer_language_is_never_an_address() -> None:
    assert score_address_candidate("Buy One Get One Free at checkout", 0) == EXCLUDED_SCORE
    assert score_address_candidate("Save 20% on 2 entrees", 4) == EXCLUDED_SCORE
    assert score_address_candidate("", 0) == EXCLUDED_SCORE


def test_street_zip_and_position_add_up() -> None:
    # street 2.5 + zip 1.5 + digits 0.4 + position (0.8 - 2 * 0.05)
    score = score_address_candidate("1234 28th St SW, Grand Rapids, MI 49509", 2)
    assert score == pytest.approx(5.1)


def test_position_bonus_bottoms_out_at_zero() -> None:
    near_top = score_address_candidate("500 Ottawa Ave NW", 0)
    far_down = score_address_candidate("500 Ottawa Ave NW", 40)
    assert near_top - far_down == pytest.approx(0.8)


def test_implausible_length_is_penalised() -> None:
    # unit marker 2.5 + digits 0.4 + position 0.8 - length 0.5
    assert score_address_candidate("Ste 4", 0) == pytest.approx(2.5 + 0.4 + 0.8 - 0.5)


def test_rank_drops_offer_language_but_keeps_digitless_lines() -> None:
    lines = _lines(
        "Buy One Get One Free at checkout",
        "BURGER BARN",
        "Grand Rapids, MI 49509",
        "1234 28th St SW",
    )
    ranked = rank_address_candidates(lines)
    assert [candidate.text for candidate in ranked] == [
        "1234 28th St SW",
        "Grand Rapids, MI 49509",
        "BURGER BARN",
    ]


def test_street_line_without_house_number_is_a_candidate() -> None:
    # street 2.5 + position (0.8 - 0.05)
    assert score_address_candidate("One Monroe Center St NW", 1) == pytest.approx(3.25)
    ranked = rank_address_candidates(_lines("ACME DELI", "One Monroe Center St NW", "Grand Rapids MI"))
    assert ranked[0].text == "One Monroe Center St NW"


def test_rank_keeps_top_six() -> None:
    lines = _lines(*[f"{100 + i} Main St" for i in range(10)])
    assert len(rank_address_candidates(lines)) == 6


@pytest.mark.asyncio
async def test_without_geocoder_top_heuristic_wins() -> None:
    candidates = rank_address_candidates(_lines("Grand Rapids, MI 49509", "1234 28th St SW"))
    picked = await pick_address(candidates)
    assert picked.address == "1234 28th St SW"
    assert picked.geo is None


@pytest.mark.asyncio
async def test_geocoded_candidate_beats_unresolvable_one() -> None:
    calls: List[str] = []
    known: Dict[str, List[GeoPoint]] = {"Grand Rapids, MI 49509": [GeoPoint(42.91, -85.71)]}

    async def geocoder(text: str) -> List[GeoPoint]:
        calls.append(text)
        return known.get(text, [])

    candidates = rank_address_candidates(_lines("1234 28th St SW", "Grand Rapids, MI 49509"))
    picked = await pick_address(candidates, geocoder)

    assert calls == ["1234 28th St SW", "Grand Rapids, MI 49509"]
    assert picked.address == "Grand Rapids, MI 49509"
    assert picked.geo == GeoPoint(42.91, -85.71)


@pytest.mark.asyncio
async def test_geocoder_failures_fall_back_to_heuristics() -> None:
    async def broken(_: str) -> List[GeoPoint]:
        raise RuntimeError("network down")

    candidates = rank_address_candidates(_lines("1234 28th St SW", "Grand Rapids, MI 49509"))
    picked = await pick_address(candidates, broken)
    assert picked.address == "1234 28th St SW"
    assert picked.geo is None


@pytest.mark.asyncio
async def test_slow_geocoder_is_timed_out_per_candidate() -> None:
    async def slow(text: str) -> List[dict]:
        if text.startswith("1234"):
            await asyncio.sleep(1)
        return [{"latitude": 42.0, "longitude": -85.0}]

    candidates = rank_address_candidates(_lines("1234 28th St SW", "Grand Rapids, MI 49509"))
    picked = await pick_address(candidates, slow, timeout=0.05)
    assert picked.address == "Grand Rapids, MI 49509"
    assert picked.geo == GeoPoint(42.0, -85.0)


def test_phone_with_most_digits_wins() -> None:
    assert pick_phone("Call 555-1234 or (616) 555-0198") == "(616) 555-0198"


def test_phone_ties_keep_first_match() -> None:
    assert pick_phone("555-1234 and 555-9876") == "555-1234"
    assert pick_phone("no phone") is None


@pytest.mark.asyncio
async def test_digitless_street_line_is_geocoded() -> None:
    calls: List[str] = []

    async def geocoder(text: str) -> List[GeoPoint]:
        calls.append(text)
        return [GeoPoint(42.96, -85.67)]

    candidates = rank_address_candidates(_lines("SUBWAY", "Main Street Plaza Suite"))
    picked = await pick_address(candidates, geocoder)

    assert "Main Street Plaza Suite" in calls
    assert picked.address == "Main Street Plaza Suite"
    assert picked.geo == GeoPoint(42.96, -85.67)


@pytest.mark.asyncio
async def test_unexpected_geocoder_result_counts_as_miss() -> None:
    async def odd(_: str) -> object:
        return 42

    candidates = rank_address_candidates(_lines("1234 28th St SW", "Grand Rapids, MI 49509"))
    picked = await pick_address(candidates, odd)  # type: ignore[arg-type]

    assert picked.address == "1234 28th St SW"
    assert picked.geo is None
