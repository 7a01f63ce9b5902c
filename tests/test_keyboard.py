import itertools
from typing import List

import pygame

from tiltsteer.control_types import InputDirection
from tiltsteer.keyboard import KEY_CONTRIBUTIONS, KeyStateAggregator, key_id_from_pygame


def test_every_key_combination_sums_and_clamps_per_axis() -> None:
    keys = list(KEY_CONTRIBUTIONS)
    for pressed in itertools.product([False, True], repeat=len(keys)):
        aggregator = KeyStateAggregator()
        for key, down in zip(keys, pressed):
            aggregator.set_key(key, down)
        held = {key for key, down in zip(keys, pressed) if down}

        right = bool(held & {"ArrowRight", "KeyD"})
        left = bool(held & {"ArrowLeft", "KeyA"})
        up = bool(held & {"ArrowUp", "KeyW"})
        down_ = bool(held & {"ArrowDown", "KeyS"})
        expected = InputDirection(float(right) - float(left), float(up) - float(down_))
        assert aggregator.current_direction() == expected, held


def test_opposing_keys_cancel() -> None:
    aggregator = KeyStateAggregator()
    aggregator.set_key("ArrowLeft", True)
    aggregator.set_key("KeyD", True)
    assert aggregator.current_direction().x == 0.0
    aggregator.set_key("KeyW", True)
    assert aggregator.current_direction() == InputDirection(0.0, 1.0)


def test_callback_is_edge_triggered() -> None:
    changes: List[InputDirection] = []
    aggregator = KeyStateAggregator(on_change=changes.append)

    aggregator.set_key("ArrowRight", True)
    # The second key of the same direction does not change the result.
    aggregator.set_key("KeyD", True)
    aggregator.set_key("ArrowRight", False)
    assert changes == [InputDirection(1.0, 0.0)]

    aggregator.set_key("KeyD", False)
    assert changes[-1] == InputDirection.neutral()
    assert len(changes) == 2


def test_unknown_keys_are_ignored() -> None:
    changes: List[InputDirection] = []
    aggregator = KeyStateAggregator(on_change=changes.append)
    assert aggregator.set_key("Space", True) is False
    assert aggregator.set_key("keyw", True) is False
    assert changes == []
    assert aggregator.key_states() == {key: False for key in KEY_CONTRIBUTIONS}


def test_reset_releases_held_keys() -> None:
    changes: List[InputDirection] = []
    aggregator = KeyStateAggregator(on_change=changes.append)
    aggregator.set_key("KeyS", True)
    aggregator.reset()
    assert aggregator.current_direction().is_neutral
    assert changes == [InputDirection(0.0, -1.0), InputDirection.neutral()]


def test_pygame_key_translation() -> None:
    assert key_id_from_pygame(pygame.K_UP) == "ArrowUp"
    assert key_id_from_pygame(pygame.K_a) == "KeyA"
    assert key_id_from_pygame(pygame.K_SPACE) is None
