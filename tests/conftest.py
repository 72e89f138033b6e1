"""Shared pytest fixtures for the friend recommender tests.

Exposes the sample snapshot directory shipped under data/sample and a
config pointing at it, so test modules can focus on behaviour.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from src.friendrec.config import RecommenderConfig, config_from_dict

from tests.helpers import SAMPLE_DIR


@pytest.fixture
def sample_dir() -> Path:
    return SAMPLE_DIR


@pytest.fixture
def sample_config() -> RecommenderConfig:
    return config_from_dict(
        {
            "anchors": [10000, 10001],
            "paths": {
                "knows": str(SAMPLE_DIR / "person_knows_person.csv"),
                "relations": [
                    str(SAMPLE_DIR / "person_hasInterest_tag.csv"),
                    str(SAMPLE_DIR / "person_isLocatedIn_place.csv"),
                    str(SAMPLE_DIR / "person_studyAt_organisation.csv"),
                    str(SAMPLE_DIR / "person_workAt_organisation.csv"),
                ],
                "activities": str(SAMPLE_DIR / "activities.txt"),
            },
            "windows": {
                "item": {"length_minutes": 240, "slide_minutes": 60, "out_of_order_minutes": 5},
                "coarse": {"length_minutes": 60},
            },
            "ranking": {"static_weight": 0.3, "top_k": 5},
            "pipeline": {"workers": 2},
        }
    )
