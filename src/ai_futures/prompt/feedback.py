"""Sharpe-ratio driven risk posture for the next decision cycle.

The engine is stateless: the only memory of past cycles is the Sharpe ratio
the caller passes in. The posture it returns is rendered into the user
prompt; nothing here enforces it.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class RiskPosture:
    """Recommended sizing and selectivity for one Sharpe band."""

    band: str
    sharpe_ratio: float
    account_equity: float
    altcoin_size_multiple: float
    major_size_multiple: float
    stop_loss_pct: float
    min_confidence: int
    min_reward_risk: float
    max_positions: int
    headline: str
    rationale: str
    guidance: tuple[str, ...] = field(default_factory=tuple)
    overconfidence_warning: bool = False

    @property
    def altcoin_size_usd(self) -> float:
        return self.account_equity * self.altcoin_size_multiple

    @property
    def major_size_usd(self) -> float:
        return self.account_equity * self.major_size_multiple


@dataclass(slots=True, frozen=True)
class _Band:
    name: str
    upper: float
    label: str
    altcoin_size_multiple: float
    major_size_multiple: float
    stop_loss_pct: float
    min_confidence: int
    min_reward_risk: float
    max_positions: int
    headline: str
    rationale: str
    guidance: tuple[str, ...]
    overconfidence_warning: bool = False


# Ordered by upper bound; the last band is open-ended.
_BANDS: tuple[_Band, ...] = (
    _Band(
        name="< -0.5",
        upper=-0.5,
        label="losing money, strategy must change",
        altcoin_size_multiple=0.6,
        major_size_multiple=2.5,
        stop_loss_pct=1.0,
        min_confidence=95,
        min_reward_risk=3.0,
        max_positions=1,
        headline="WARNING: the current strategy is losing money. Adjust immediately.",
        rationale=(
            "Returns are negative on a risk-adjusted basis, so capital preservation comes "
            "first: halve position size, cut losers fast and only take the single best setup."
        ),
        guidance=(
            "Were the losses caused by symbol selection or by timing?",
            "Did you chase breakouts or trade against the trend?",
            "Were stop-losses actually respected?",
            "Trade less often: skipping a trade is better than forcing one.",
        ),
    ),
    _Band(
        name="[-0.5, 0)",
        upper=0.0,
        label="slightly negative, trade conservatively",
        altcoin_size_multiple=0.8,
        major_size_multiple=3.5,
        stop_loss_pct=1.5,
        min_confidence=80,
        min_reward_risk=2.5,
        max_positions=2,
        headline="Status: slightly negative risk-adjusted returns. Trade conservatively.",
        rationale=(
            "Losses are small but persistent. Smaller size and tighter stops limit the "
            "damage while a higher confidence bar filters out marginal setups."
        ),
        guidance=(
            "Wait for cleaner entries instead of acting on impulse.",
            "Cut losing positions at the stop without second-guessing.",
        ),
    ),
    _Band(
        name="[0, 0.7)",
        upper=0.7,
        label="positive but volatile",
        altcoin_size_multiple=0.8,
        major_size_multiple=3.5,
        stop_loss_pct=1.5,
        min_confidence=80,
        min_reward_risk=2.5,
        max_positions=2,
        headline="Status: positive but volatile returns. Optimize before scaling up.",
        rationale=(
            "The strategy makes money but the swings are large relative to the gains. "
            "Reducing the size of losing trades improves the ratio more than changing size."
        ),
        guidance=(
            "Focus on reducing loss magnitude and executing stops consistently.",
            "Take profit when targets are hit instead of hoping for more.",
            "Fewer, higher-quality trades beat frequent small ones.",
        ),
    ),
    _Band(
        name="[0.7, 1.0)",
        upper=1.0,
        label="good",
        altcoin_size_multiple=1.2,
        major_size_multiple=5.0,
        stop_loss_pct=2.0,
        min_confidence=75,
        min_reward_risk=2.0,
        max_positions=3,
        headline="Status: good performance. Keep the current strategy.",
        rationale=(
            "Risk-adjusted returns are healthy, so standard sizing applies. The job now "
            "is to keep the discipline that produced them."
        ),
        guidance=(
            "Identify what the winning trades had in common and repeat it.",
            "Review losing trades to avoid repeating the same mistake.",
        ),
    ),
    _Band(
        name=">= 1.0",
        upper=float("inf"),
        label="excellent",
        altcoin_size_multiple=1.5,
        major_size_multiple=6.0,
        stop_loss_pct=2.0,
        min_confidence=75,
        min_reward_risk=2.0,
        max_positions=3,
        headline="Status: excellent performance. The strategy is working.",
        rationale=(
            "Strong risk-adjusted returns justify a modest increase in size, but market "
            "regimes change and a streak is not a guarantee."
        ),
        guidance=(
            "Keep executing stop-losses to protect accumulated gains.",
            "Do not loosen risk rules because of recent wins.",
        ),
        overconfidence_warning=True,
    ),
)


def _band_for(sharpe: float) -> _Band:
    # NaN compares false against every bound and lands in the most defensive band.
    return next((band for band in _BANDS if sharpe < band.upper), _BANDS[0])


def interpret_sharpe(sharpe: float) -> str:
    """Short qualitative label for a cycle-level Sharpe ratio."""
    return _band_for(sharpe).label


def sharpe_band_table() -> list[tuple[str, str]]:
    """``(band, label)`` rows, for the system prompt's interpretation table."""
    return [(band.name, band.label) for band in _BANDS]


class AdaptiveFeedbackEngine:
    """Map a Sharpe ratio to a :class:`RiskPosture`."""

    def recommend(self, sharpe: float, equity: float) -> RiskPosture:
        band = _band_for(sharpe)
        return RiskPosture(
            band=band.name,
            sharpe_ratio=sharpe,
            account_equity=equity,
            altcoin_size_multiple=band.altcoin_size_multiple,
            major_size_multiple=band.major_size_multiple,
            stop_loss_pct=band.stop_loss_pct,
            min_confidence=band.min_confidence,
            min_reward_risk=band.min_reward_risk,
            max_positions=band.max_positions,
            headline=band.headline,
            rationale=band.rationale,
            guidance=band.guidance,
            overconfidence_warning=band.overconfidence_warning,
        )

    def render(self, posture: RiskPosture) -> str:
        """Prompt text for a posture: numbers first, then the reasoning."""
        position_word = "position" if posture.max_positions == 1 else "positions"
        lines = [
            f"### Adaptive risk posture (Sharpe {posture.sharpe_ratio:.2f}, band {posture.band})",
            "",
            f"**{posture.headline}**",
            "",
            "**Adjustments**:",
            (
                f"- Position size: altcoins {posture.altcoin_size_usd:.0f} USDT "
                f"({posture.altcoin_size_multiple:g}x equity), BTC/ETH "
                f"{posture.major_size_usd:.0f} USDT ({posture.major_size_multiple:g}x equity)"
            ),
            f"- Stop-loss: -{posture.stop_loss_pct:g}% from entry",
            (
                f"- Entry bar: confidence >= {posture.min_confidence}, "
                f"reward:risk >= 1:{posture.min_reward_risk:g}"
            ),
            f"- Concurrent positions: at most {posture.max_positions} {position_word}",
            "",
            f"**Why**: {posture.rationale}",
            "",
        ]
        if posture.guidance:
            lines.append("**Focus**:")
            lines.extend(f"- {item}" for item in posture.guidance)
            lines.append("")
        if posture.overconfidence_warning:
            lines.append(
                "**Warning**: do not become overconfident. Keep risk discipline even after a winning streak."
            )
            lines.append("")
        return "\n".join(lines)
