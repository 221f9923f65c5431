from __future__ import annotations

import math

import pytest

from ai_futures.prompt.feedback import AdaptiveFeedbackEngine, interpret_sharpe, sharpe_band_table


@pytest.mark.parametrize(
    ("sharpe", "band", "max_positions", "min_confidence"),
    [
        (-0.8, "< -0.5", 1, 95),
        (-0.5, "[-0.5, 0)", 2, 80),
        (0.0, "[0, 0.7)", 2, 80),
        (0.7, "[0.7, 1.0)", 3, 75),
        (1.0, ">= 1.0", 3, 75),
    ],
)
def test_band_selection(sharpe: float, band: str, max_positions: int, min_confidence: int) -> None:
    posture = AdaptiveFeedbackEngine().recommend(sharpe, 10_000)
    assert posture.band == band
    assert posture.max_positions == max_positions
    assert posture.min_confidence == min_confidence


def test_posture_is_monotonic_across_bands() -> None:
    engine = AdaptiveFeedbackEngine()
    postures = [engine.recommend(sharpe, 10_000) for sharpe in (-2.0, -0.3, 0.3, 0.8, 1.5, 3.0)]
    for lower, higher in zip(postures, postures[1:]):
        assert higher.altcoin_size_multiple >= lower.altcoin_size_multiple
        assert higher.major_size_multiple >= lower.major_size_multiple
        assert higher.max_positions >= lower.max_positions
        # Looser stops in better bands, never tighter.
        assert higher.stop_loss_pct >= lower.stop_loss_pct


def test_negative_band_halves_size_and_tightens_stop() -> None:
    posture = AdaptiveFeedbackEngine().recommend(-1.2, 10_000)
    assert posture.altcoin_size_usd == pytest.approx(6_000)
    assert posture.major_size_usd == pytest.approx(25_000)
    assert posture.stop_loss_pct == 1.0
    assert posture.min_reward_risk == 3.0


def test_render_includes_numbers_and_rationale() -> None:
    engine = AdaptiveFeedbackEngine()
    text = engine.render(engine.recommend(-0.8, 1_000))
    assert "at most 1 position" in text
    assert "confidence >= 95" in text
    assert "reward:risk >= 1:3" in text
    assert "600 USDT" in text
    assert "**Why**:" in text


def test_only_top_band_warns_about_overconfidence() -> None:
    engine = AdaptiveFeedbackEngine()
    assert "overconfident" in engine.render(engine.recommend(1.4, 1_000))
    assert "overconfident" not in engine.render(engine.recommend(0.8, 1_000))


def test_recommend_is_stateless() -> None:
    engine = AdaptiveFeedbackEngine()
    first = engine.recommend(0.2, 5_000)
    engine.recommend(-3.0, 5_000)
    assert engine.recommend(0.2, 5_000) == first


def test_interpretation_table_matches_bands() -> None:
    rows = sharpe_band_table()
    assert [band for band, _ in rows] == ["< -0.5", "[-0.5, 0)", "[0, 0.7)", "[0.7, 1.0)", ">= 1.0"]
    assert interpret_sharpe(-0.8) == rows[0][1]
    assert interpret_sharpe(math.nan) == rows[0][1]
