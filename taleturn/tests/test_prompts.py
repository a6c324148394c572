"""
Tests for the prompt catalogs and the CLI that prints them.
"""

import argparse

from ..cli import cmd_prompts
from ..prompts import (
    DRAW_ORDERS,
    FACE_PROMPTS,
    NUMBERED_CARD_VALUES,
    NUMBERED_PROMPTS,
    get_face_prompt,
    get_numbered_prompt,
)


class TestCatalog:
    """Tests for the static pools."""

    def test_face_pool(self):
        assert [p.id for p in FACE_PROMPTS] == list(range(1, 13))
        assert len({p.card for p in FACE_PROMPTS}) == 12

    def test_numbered_pool_covers_every_key(self):
        keys = {(p.card_number, p.draw_order) for p in NUMBERED_PROMPTS}

        assert keys == {(card, order) for card in NUMBERED_CARD_VALUES for order in DRAW_ORDERS}

    def test_lookups(self):
        assert get_face_prompt(1).id == 1
        assert get_face_prompt(13) is None
        assert get_numbered_prompt(9, 4).card_number == 9
        assert get_numbered_prompt(10, 1) is None


class TestPromptsCommand:
    """Tests for `taleturn prompts`."""

    def test_prints_one_pool(self, capsys):
        cmd_prompts(argparse.Namespace(pool="face"))

        out = capsys.readouterr().out
        assert "Face prompts:" in out
        assert "Numbered prompts:" not in out
        assert FACE_PROMPTS[0].prompt in out

    def test_prints_both_pools(self, capsys):
        cmd_prompts(argparse.Namespace(pool=None))

        out = capsys.readouterr().out
        assert "Face prompts:" in out
        assert "Numbered prompts:" in out
