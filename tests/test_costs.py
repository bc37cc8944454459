"""Tests for credit cost lookups."""

from __future__ import annotations

import unittest

from genchat import catalog
from genchat.costs import estimate, image_cost, music_cost, video_cost
from genchat.exceptions import ActionValidationError
from genchat.models import ImageParams, MusicParams, VideoParams


class ImageCostTests(unittest.TestCase):
    def test_flat_price_per_model(self) -> None:
        self.assertEqual(image_cost("flux"), 0.5)
        self.assertEqual(image_cost("flux-2"), 0.65)
        self.assertEqual(image_cost("nano-banana-pro"), 0.7)

    def test_aspect_ratio_never_changes_price(self) -> None:
        prices = {
            estimate(ImageParams(prompt="p", model="flux", aspect_ratio=ratio.id))
            for ratio in catalog.ASPECT_RATIOS
        }
        self.assertEqual(prices, {0.5})

    def test_unknown_model_is_rejected(self) -> None:
        with self.assertRaises(ActionValidationError):
            image_cost("dall-e")

    def test_missing_model_is_rejected(self) -> None:
        with self.assertRaises(ActionValidationError):
            estimate(ImageParams(prompt="p"))


class VideoCostTests(unittest.TestCase):
    def test_price_is_keyed_by_duration_and_model(self) -> None:
        self.assertEqual(video_cost("4s", "ltx"), 4.0)
        self.assertEqual(video_cost("8s", "ltx"), 8.0)
        self.assertEqual(video_cost("6s", "veo"), 13.2)
        self.assertEqual(video_cost("8s", "veo"), 17.6)

    def test_every_model_prices_every_duration(self) -> None:
        for model in catalog.VIDEO_MODELS:
            for duration in catalog.VIDEO_DURATIONS:
                self.assertGreater(video_cost(duration, model.id), 0)

    def test_unsupported_duration_is_rejected(self) -> None:
        with self.assertRaises(ActionValidationError):
            video_cost("10s", "ltx")

    def test_missing_duration_is_rejected(self) -> None:
        with self.assertRaises(ActionValidationError):
            estimate(VideoParams(prompt="p", model="veo"))


class MusicCostTests(unittest.TestCase):
    def test_whole_credits_per_started_minute(self) -> None:
        self.assertEqual(music_cost(15), 1)
        self.assertEqual(music_cost(30), 1)
        self.assertEqual(music_cost(60), 1)
        self.assertEqual(music_cost(120), 2)
        self.assertEqual(music_cost(180), 3)

    def test_estimate_matches_tier(self) -> None:
        self.assertEqual(estimate(MusicParams(prompt="p", duration_seconds=120)), 2.0)

    def test_unknown_duration_is_rejected(self) -> None:
        with self.assertRaises(ActionValidationError):
            music_cost(45)


if __name__ == "__main__":
    unittest.main()
