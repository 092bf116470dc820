from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coupon_capture.settings import Settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        backend_api_base="https://project.example.co",
        backend_api_key="service-key",
        ocr_engine="local",
        ocr_language="eng",
    )


@pytest.fixture
def coupon_text() -> str:
    return "\n".join(
        [
            "THE MELTING POT",
            "20% OFF",
            "Your Entire Dinner",
            "1234 28th St SW",
            "Grand Rapids, MI 49509",
            "(616) 555-0198",
            "Dine-in only. Valid at participating locations.",
            "Expires 12/31/26",
            "www.meltingpot.com",
        ]
    )
