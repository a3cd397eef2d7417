import os
import sys
import tempfile

import pytest
from unittest.mock import MagicMock

# Add project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Keep config.json and logs out of the real home directory
os.environ.setdefault("VOCABTREE_DATA_DIR", tempfile.mkdtemp(prefix="vocabtree-tests-"))

from api_client import VocabApiClient
from category_store import CategoryStore
from tree_manager_base import build_category


def vocabulary_cards():
    """
    Vocabulary (10)
      Animals (1)
        Pets (4)
          Fish (5)
        Cat (2)
        Dog (3)
    """
    return [
        {"id": 1, "name": "Animals", "is_folder": True, "parent_id": None, "category_id": 10,
         "children": [
             {"id": 3, "name": "Dog", "is_folder": False, "parent_id": 1, "category_id": 10,
              "meanings": ["a dog"], "children": []},
             {"id": 4, "name": "Pets", "is_folder": True, "parent_id": 1, "category_id": 10,
              "children": [
                  {"id": 5, "name": "Fish", "is_folder": False, "parent_id": 4, "category_id": 10,
                   "children": []},
              ]},
             {"id": 2, "name": "Cat", "is_folder": False, "parent_id": 1, "category_id": 10,
              "meanings": ["a cat"], "example_phrases": ["the cat sat"], "children": []},
         ]},
    ]


def travel_cards():
    """
    Travel (20)
      Airport (6)
      Hotel (7)
    """
    return [
        {"id": 7, "name": "Hotel", "is_folder": False, "parent_id": None, "category_id": 20,
         "children": []},
        {"id": 6, "name": "Airport", "is_folder": True, "parent_id": None, "category_id": 20,
         "children": []},
    ]


def categories_payload():
    """Shape of GET /categories/with-cards"""
    return [
        {"category": {"id": 10, "name": "Vocabulary"}, "cards": vocabulary_cards()},
        {"category": {"id": 20, "name": "Travel"}, "cards": travel_cards()},
    ]


@pytest.fixture
def forest():
    return (
        build_category({"id": 10, "name": "Vocabulary"}, vocabulary_cards()),
        build_category({"id": 20, "name": "Travel"}, travel_cards()),
    )


@pytest.fixture
def api():
    mock = MagicMock(spec=VocabApiClient)
    mock.get_categories_with_cards.return_value = categories_payload()
    mock.move_card.return_value = None
    return mock


@pytest.fixture
def store(api, forest):
    return CategoryStore(api, forest)
